"""
Configuration constants for the Passman password manager.

User-editable preferences live in the settings file (see ``passman.settings``);
the values here are fixed by the application.
"""

import os

# Application Metadata
APP_VERSION = "2.0.0"  # Use: Current version of the application. Type: str. Range: Semantic versioning string.
APP_NAME = "Passman"  # Use: Short name of the application, used in banners and prompts. Type: str.
APP_TITLE = f"{APP_NAME} v{APP_VERSION} - Secure Password Manager"  # Use: Title shown in the main menu panel. Type: str.

# File and Directory Names
CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".config", "passman")  # Use: Directory holding the settings file, recent vault list and logs. Type: str.
CONFIG_FILE_NAME = "passman.conf"  # Use: Filename of the key/value settings file inside CONFIG_DIR. Type: str.
CONFIG_PATH_ENV = "PASSMAN_CONFIG"  # Use: Environment variable overriding the settings file path. Type: str.
DEFAULT_VAULT_FILE = "credentials.json.enc"  # Use: Filename of the encrypted vault inside the save location. Type: str.
DEFAULT_SAVE_LOCATION = os.path.join(os.path.expanduser("~"), "Documents")  # Use: Default directory for the vault file. Type: str.
RECENT_VAULTS_FILE = "recent_vaults.txt"  # Use: Filename for storing the list of recently opened vault paths. Type: str.
LOG_DIR_NAME = "logs"  # Use: Subdirectory of CONFIG_DIR holding the audit log. Type: str.
AUDIT_LOG_FILE = "audit.log"  # Use: Filename for the security audit log. Type: str.
TEMP_FILE_SUFFIX = ".tmp"  # Use: Suffix of staging files written before an atomic replace. Type: str.

# Vault Management Settings
MAX_RECENT_VAULTS = 10  # Use: Maximum number of recently opened vault paths to remember. Type: int. Range: Positive integer.

# Vault Container Format
MAGIC_BYTES = b"PMAN"  # Use: Leading bytes identifying a Passman vault container. Type: bytes. Range: Exactly 4 bytes.
CONTAINER_VERSION = 1  # Use: Version of the container layout written by seal(). Type: int. Range: uint32.
LEGACY_MAGIC = b"Salted__"  # Use: Prefix of containers written by `openssl enc -salt` (previous releases). Type: bytes.
LEGACY_SALT_SIZE = 8  # Use: Salt size of OpenSSL legacy containers. Type: int. Range: Fixed at 8 bytes.
LEGACY_IV_SIZE = 16  # Use: IV size for AES-256-CBC legacy containers. Type: int. Range: Fixed at 16 bytes.

# Security Settings
SALT_SIZE = 16  # Use: Size of the per-container random salt for key derivation. Type: int. Range: At least 16 bytes.
KEY_SIZE = 32  # Use: Size of the encryption key in bytes. Corresponds to AES-256. Type: int. Range: 32 bytes.
NONCE_SIZE = 12  # Use: Size of the AES-GCM nonce in bytes. Type: int. Range: 12 bytes is the recommended size for GCM.
TAG_SIZE = 16  # Use: Size of the AES-GCM authentication tag in bytes. Type: int. Range: 16 bytes.
KDF_ARGON2ID = 1  # Use: Container KDF identifier for Argon2id. Type: int.
KDF_PBKDF2 = 2  # Use: Container KDF identifier for PBKDF2-HMAC-SHA256. Type: int.
DEFAULT_KDF = KDF_ARGON2ID  # Use: KDF used when sealing new containers. Type: int. Range: KDF_ARGON2ID or KDF_PBKDF2.
ARGON2_TIME_COST = 2  # Use: Argon2id time cost parameter. Type: int. Range: Typically 1 to 10.
ARGON2_MEMORY_COST = 65536  # Use: Argon2id memory cost in KiB. Type: int. Range: At least 65536 (64 MB).
ARGON2_PARALLELISM = 4  # Use: Argon2id parallelism parameter. Type: int. Range: Typically 1 to 8.
PBKDF2_ITERATIONS = 310000  # Use: Iterations for PBKDF2-HMAC-SHA256 key derivation. Type: int. Range: At least 100,000.
PASSWORD_MIN_LENGTH = 12  # Use: Master passwords shorter than this trigger a strength warning. Type: int.

# Password Generator Settings
PASSWORD_LOWER_CHARS = "abcdefghijklmnopqrstuvwxyz"  # Use: Always part of the generator pool. Type: str.
PASSWORD_UPPER_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"  # Use: Added when uppercase is enabled. Type: str.
PASSWORD_NUMBER_CHARS = "0123456789"  # Use: Added when numbers are enabled. Type: str.
PASSWORD_SYMBOL_CHARS = "!@#$%^&*()-_=+[]{}|;:<>,./?"  # Use: Added when symbols are enabled. Type: str.

# Settings Defaults
DEFAULT_PASSWORD_LENGTH = 12  # Use: Default length for generated passwords. Type: int. Range: Positive integer.
DEFAULT_CLIPBOARD_CLEAR_DELAY = 10  # Use: Seconds before a copied secret is cleared. Type: int. Range: Non-negative integer.
SEARCH_MODES = ("and", "or")  # Use: Valid search combinators. Type: tuple[str].
DEFAULT_SEARCH_MODE = "and"  # Use: Default search combinator. Type: str. Range: One of SEARCH_MODES.

# Credential Entry Settings
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"  # Use: Format of the `added` field of an entry. Type: str.
AUTH_FAILED_MESSAGE = "Incorrect master password or corrupted vault file."  # Use: Single user-facing message for any unlock failure. Type: str.

# Application State Machine States
STATE_STARTUP = "STARTUP"  # Use: Settings loaded, vault not opened yet. Type: str.
STATE_LOGIN = "LOGIN"  # Use: Asking for the master password. Type: str.
STATE_MAIN_MENU = "MAIN_MENU"  # Use: Interactive menu loop. Type: str.
STATE_EXIT = "EXIT"  # Use: Terminal state. Type: str.

# Process Exit Codes
EXIT_OK = 0  # Use: Clean quit. Type: int.
EXIT_AUTH_FAILED = 1  # Use: Aborted or failed unlock, or invalid vault payload. Type: int.
EXIT_PERSIST_FAILED = 2  # Use: The vault could not be saved at exit. Type: int.
