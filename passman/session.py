"""
Session controller: unlock, session lifetime and save-on-exit.

States: UNAUTHENTICATED -> AUTHENTICATED -> CLOSED, or straight to CLOSED
when the user aborts before unlocking. Every way of reaching CLOSED (quit,
interpreter exit, SIGINT, SIGTERM) runs the same close() path, which saves
the vault at most once and then scrubs the session.
"""

import sys
import enum
import atexit
import signal
import logging
import threading
from typing import Callable, Dict, Optional

from .errors import AuthError, PassmanError, PersistError, ValidationError
from .storage import SessionStore

logger = logging.getLogger(__name__)

# new_vault -> passphrase, or None to abort
PassphraseProvider = Callable[[bool], Optional[str]]
# (success, message)
Reporter = Callable[[bool, str], None]


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


def _log_report(ok: bool, message: str) -> None:
    if ok:
        logger.info(message)
    else:
        logger.error(message)


def _exit_signals():
    names = ("SIGINT", "SIGTERM", "SIGHUP")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class SessionController:
    """Drives one SessionStore through the session state machine."""

    def __init__(self, store: SessionStore, reporter: Optional[Reporter] = None):
        self.store = store
        self.state = SessionState.UNAUTHENTICATED
        self.last_error: Optional[PassmanError] = None
        self._reporter = reporter or _log_report
        self._close_lock = threading.Lock()
        self._closing = False
        self._close_result: Optional[bool] = None
        self._previous_handlers: Dict[int, object] = {}
        self._atexit_registered = False

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def open_session(self, passphrase_provider: PassphraseProvider) -> bool:
        """
        Unlock the vault, or start an empty one when the file does not exist.

        Args:
            passphrase_provider: Called with new_vault=True/False; returns the
                master password, or None/"" to abort

        Returns:
            True when the session is authenticated. On False, last_error
            holds the AuthError or ValidationError.
        """
        if self.state is not SessionState.UNAUTHENTICATED:
            raise PassmanError(f"Cannot open a session in state {self.state.value}")

        new_vault = not self.store.vault_exists()
        passphrase = passphrase_provider(new_vault)
        if not passphrase:
            logger.info("No master password provided, aborting")
            self.last_error = AuthError("No master password provided")
            return False

        try:
            if new_vault:
                self.store.initialize_empty(self.store.vault_path, passphrase)
            else:
                self.store.unlock(self.store.vault_path, passphrase)
        except AuthError as e:
            logger.warning(f"Unlock failed for {self.store.vault_path}: wrong passphrase or corrupt container")
            self.last_error = e
            return False
        except ValidationError as e:
            logger.error(f"Unlock failed for {self.store.vault_path}: invalid vault payload: {e}")
            self.last_error = e
            return False

        self.state = SessionState.AUTHENTICATED
        return True

    def close(self) -> bool:
        """
        Persist (if authenticated) and scrub. Runs at most once.

        Returns:
            False if the final save failed, True otherwise. Repeated or
            overlapping calls return the outcome of the first one.
        """
        if not self._close_lock.acquire(blocking=False):
            logger.debug("close() already running, ignoring re-entrant call")
            return self._close_result is not False
        try:
            if self._close_result is not None:
                return self._close_result
            self._closing = True

            ok = True
            if self.state is SessionState.AUTHENTICATED:
                try:
                    self.store.persist()
                    self._reporter(True, f"Credentials securely saved to {self.store.vault_path}.")
                except PersistError as e:
                    ok = False
                    self.last_error = e
                    self._reporter(False, f"Failed to save credentials: {e}")

            self.store.scrub()
            self.state = SessionState.CLOSED
            self._close_result = ok
            self._restore_signal_handlers()
            return ok
        finally:
            self._close_lock.release()

    def install_exit_hooks(self) -> None:
        """Route interpreter exit and termination signals through close()."""
        if not self._atexit_registered:
            atexit.register(self.close)
            self._atexit_registered = True

        if threading.current_thread() is not threading.main_thread():
            logger.warning("Signal handlers can only be installed from the main thread")
            return
        for signum in _exit_signals():
            if signum not in self._previous_handlers:
                self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        if not self._previous_handlers or threading.current_thread() is not threading.main_thread():
            return
        for signum, handler in self._previous_handlers.items():
            # None means the handler was not set from Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers = {}

    def _handle_signal(self, signum, frame) -> None:
        if self._closing:
            logger.warning(f"Signal {signum} received while saving, ignoring it")
            return
        logger.info(f"Signal {signum} received, closing session")
        self.close()
        sys.exit(128 + signum)
