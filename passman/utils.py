import platform
import os
import stat
import logging

from . import config

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("passman.audit")

if platform.system() == "Windows":
    try:
        import win32security
        import win32api
        import win32con
        import win32file
        WINDOWS_SECURITY_AVAILABLE = True
    except ImportError:
        logger.warning("pywin32 not fully installed, cannot set Windows file permissions securely.")
        WINDOWS_SECURITY_AVAILABLE = False
else:
    WINDOWS_SECURITY_AVAILABLE = False


def _set_windows_file_permissions(filepath: str) -> bool:
    """
    Sets restrictive permissions on a file for Windows, granting full control
    only to the current user/owner and removing access for others.
    """
    if not WINDOWS_SECURITY_AVAILABLE:
        logger.warning(f"Skipping Windows file permission setting for {filepath}: pywin32 not available.")
        return False

    try:
        current_user_name = win32api.GetUserName()
        current_user_sid, _, _ = win32security.LookupAccountName(None, current_user_name)

        # Owner-only DACL
        dacl = win32security.ACL()
        dacl.AddAccessAllowedAce(
            win32security.ACL_REVISION,
            win32con.GENERIC_READ | win32con.GENERIC_WRITE,
            current_user_sid
        )

        file_handle = win32file.CreateFile(
            filepath,
            win32con.WRITE_DAC,
            win32file.FILE_SHARE_READ | win32file.FILE_SHARE_WRITE | win32file.FILE_SHARE_DELETE,
            None,
            win32con.OPEN_EXISTING,
            win32con.FILE_ATTRIBUTE_NORMAL,
            None
        )
        try:
            win32security.SetSecurityInfo(
                file_handle,
                win32security.SE_FILE_OBJECT,
                win32security.DACL_SECURITY_INFORMATION | win32security.PROTECTED_DACL_SECURITY_INFORMATION,
                None,
                None,
                dacl,
                None
            )
        finally:
            win32file.CloseHandle(file_handle)
    except win32api.error as e:
        if e.winerror == 5:  # Access is denied
            logger.warning(f"Could not harden permissions for {filepath}: access is denied. The file was written.")
            return True
        logger.error(f"Failed to set Windows file permissions for {filepath}: {e}")
        return False
    return True


def set_owner_only_permissions(filepath: str) -> bool:
    """Make a file readable/writable by its owner only (0600 on POSIX)."""
    if platform.system() == "Windows":
        return _set_windows_file_permissions(filepath)
    try:
        os.chmod(filepath, stat.S_IRUSR | stat.S_IWUSR)
    except OSError as e:
        logger.warning(f"Failed to set secure file permissions for {filepath}: {e}")
        return False
    return True


def atomic_write_bytes(filepath: str, data: bytes, private: bool = True) -> None:
    """
    Write data to filepath through a staging file and an atomic rename.

    The staging file sits next to the target so the rename never crosses a
    filesystem. It is removed on every failure path, and the target is either
    the old file or the complete new one, never a partial write.

    Args:
        filepath: Destination path
        data: Bytes to write
        private: Restrict the result to owner-only permissions

    Raises:
        OSError: If the directory cannot be created or the write/rename fails
    """
    directory = os.path.dirname(os.path.abspath(filepath))
    os.makedirs(directory, exist_ok=True)
    tmp_path = filepath + config.TEMP_FILE_SUFFIX

    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, filepath)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    if private and not set_owner_only_permissions(filepath):
        logger.warning(f"Failed to set secure file permissions for {filepath}.")


def log_action(action: str, details: str) -> None:
    """Record a security-relevant action on the audit logger."""
    audit_logger.info(f"{action} | {details}")


def setup_audit_log(log_dir: str) -> logging.Handler:
    """
    Attach a file handler for the audit logger.

    Args:
        log_dir: Directory of the audit log, created if needed

    Returns:
        The installed handler

    Raises:
        OSError: If the directory or log file cannot be created
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, config.AUDIT_LOG_FILE)
    handler = logging.FileHandler(log_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s'))
    audit_logger.addHandler(handler)
    audit_logger.setLevel(logging.INFO)
    set_owner_only_permissions(log_path)
    return handler
