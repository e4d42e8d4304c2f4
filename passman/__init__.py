"""
Passman Password Manager

Single-user, terminal-based credential vault. The whole collection lives in
one passphrase-encrypted file that is decrypted on unlock and re-sealed when
the session ends.
"""

from .config import APP_VERSION as __version__
