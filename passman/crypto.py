"""
Vault codec: cryptographic operations for the password manager.

Turns a plaintext blob into an encrypted vault container and back, given a
passphrase. Nothing is stored besides the container itself: the salt, nonce
and authentication tag travel inside it, the passphrase never does.

Container layout (integers are little-endian uint32):

    magic "PMAN" | version | kdf id | salt len + salt | nonce len + nonce
    | tag len + tag | ciphertext len + ciphertext

magic, version and kdf id are authenticated as associated data, so a
tampered header fails exactly like a tampered body.

SECURITY NOTE:
Never log passphrases, keys or plaintext. Error messages name the failing
step only.
"""

import io
import os
import hmac
import struct
import logging
from typing import Tuple, Union

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config
from . import utils
from .errors import DecryptError, EncryptError, PersistError

logger = logging.getLogger(__name__)

Passphrase = Union[str, bytes, bytearray]

_HEADER = struct.Struct('<4sII')
_LENGTH = struct.Struct('<I')
SUPPORTED_KDFS = (config.KDF_ARGON2ID, config.KDF_PBKDF2)


def _passphrase_bytes(passphrase: Passphrase) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode('utf-8')
    return bytes(passphrase)


class CryptoManager:
    """Handles the cryptographic primitives behind the vault codec."""

    SALT_SIZE = config.SALT_SIZE
    KEY_SIZE = config.KEY_SIZE
    NONCE_SIZE = config.NONCE_SIZE
    TAG_SIZE = config.TAG_SIZE

    # KDF parameters
    ARGON2_TIME_COST = config.ARGON2_TIME_COST
    ARGON2_MEMORY_COST = config.ARGON2_MEMORY_COST
    ARGON2_PARALLELISM = config.ARGON2_PARALLELISM
    PBKDF2_ITERATIONS = config.PBKDF2_ITERATIONS

    def __init__(self):
        """Initialize the crypto manager."""
        self.backend = default_backend()

    def generate_salt(self) -> bytes:
        """Generate a cryptographically secure random salt."""
        return os.urandom(self.SALT_SIZE)

    def derive_key(self, password: Passphrase, salt: bytes, kdf: int = config.DEFAULT_KDF) -> bytearray:
        """
        Derive an encryption key from a password using Argon2id or PBKDF2.

        Args:
            password: The master password
            salt: Random salt for key derivation
            kdf: config.KDF_ARGON2ID or config.KDF_PBKDF2

        Returns:
            32-byte encryption key, as a bytearray so callers can wipe it

        Raises:
            ValueError: If the KDF identifier is unknown
        """
        secret = _passphrase_bytes(password)
        if kdf == config.KDF_ARGON2ID:
            key = hash_secret_raw(
                secret=secret,
                salt=salt,
                time_cost=self.ARGON2_TIME_COST,
                memory_cost=self.ARGON2_MEMORY_COST,
                parallelism=self.ARGON2_PARALLELISM,
                hash_len=self.KEY_SIZE,
                type=Type.ID
            )
        elif kdf == config.KDF_PBKDF2:
            pbkdf2 = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.KEY_SIZE,
                salt=salt,
                iterations=self.PBKDF2_ITERATIONS,
                backend=self.backend
            )
            key = pbkdf2.derive(secret)
        else:
            raise ValueError(f"Unsupported KDF identifier: {kdf}")
        return bytearray(key)

    def encrypt(self, plaintext: bytes, key: bytearray, associated_data: bytes = b"") -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt data using AES-256-GCM.

        Args:
            plaintext: Data to encrypt
            key: 32-byte encryption key
            associated_data: Authenticated but unencrypted bytes (the container header)

        Returns:
            Tuple of (ciphertext, nonce, tag)
        """
        nonce = os.urandom(self.NONCE_SIZE)
        cipher = Cipher(
            algorithms.AES(key),
            modes.GCM(nonce),
            backend=self.backend
        )
        encryptor = cipher.encryptor()
        if associated_data:
            encryptor.authenticate_additional_data(associated_data)
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return ciphertext, nonce, encryptor.tag

    def decrypt(self, ciphertext: bytes, key: bytearray, nonce: bytes, tag: bytes,
                associated_data: bytes = b"") -> bytes:
        """
        Decrypt data using AES-256-GCM.

        Raises:
            InvalidTag: If authentication fails
        """
        cipher = Cipher(
            algorithms.AES(key),
            modes.GCM(nonce, tag),
            backend=self.backend
        )
        decryptor = cipher.decryptor()
        if associated_data:
            decryptor.authenticate_additional_data(associated_data)
        return decryptor.update(ciphertext) + decryptor.finalize()

    def decrypt_legacy(self, container: bytes, password: Passphrase) -> bytes:
        """
        Decrypt an `openssl enc -aes-256-cbc -salt` container.

        Key and IV come from OpenSSL's EVP_BytesToKey over SHA-256 with a
        single iteration, which is what `openssl enc` does without -pbkdf2.
        CBC carries no MAC: a wrong password is only caught when the PKCS#7
        padding happens to be invalid.

        Raises:
            ValueError: If the container is malformed or the padding is invalid
        """
        prefix_len = len(config.LEGACY_MAGIC)
        salt = container[prefix_len:prefix_len + config.LEGACY_SALT_SIZE]
        ciphertext = container[prefix_len + config.LEGACY_SALT_SIZE:]
        if len(salt) != config.LEGACY_SALT_SIZE or not ciphertext or len(ciphertext) % 16:
            raise ValueError("Malformed legacy container")

        key, iv = self._evp_bytes_to_key(_passphrase_bytes(password), salt)
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=self.backend).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
        finally:
            self.clear_bytes(key)
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    def _evp_bytes_to_key(self, password: bytes, salt: bytes) -> Tuple[bytearray, bytes]:
        wanted = self.KEY_SIZE + config.LEGACY_IV_SIZE
        derived = b""
        block = b""
        while len(derived) < wanted:
            digest = hashes.Hash(hashes.SHA256(), backend=self.backend)
            digest.update(block + password + salt)
            block = digest.finalize()
            derived += block
        return bytearray(derived[:self.KEY_SIZE]), derived[self.KEY_SIZE:wanted]

    def secure_compare(self, a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(a, b)

    def clear_bytes(self, data: bytearray) -> None:
        """Attempt to clear sensitive bytes from memory."""
        if isinstance(data, bytearray):
            for i in range(len(data)):
                data[i] = 0


def is_legacy_container(container: bytes) -> bool:
    """True for containers written by the OpenSSL-based releases."""
    return container.startswith(config.LEGACY_MAGIC)


def seal(plaintext: bytes, passphrase: Passphrase, kdf: int = config.DEFAULT_KDF) -> bytes:
    """
    Encrypt plaintext into a self-contained vault container.

    A fresh salt and nonce are drawn for every call, so sealing the same
    plaintext twice never yields the same bytes.

    Args:
        plaintext: Serialized credential collection
        passphrase: The master password
        kdf: Key derivation function identifier

    Returns:
        Container bytes

    Raises:
        EncryptError: If the KDF is unknown or the cipher engine fails
    """
    if kdf not in SUPPORTED_KDFS:
        raise EncryptError(f"Unsupported KDF identifier: {kdf}")

    crypto = CryptoManager()
    salt = crypto.generate_salt()
    header = _HEADER.pack(config.MAGIC_BYTES, config.CONTAINER_VERSION, kdf)

    key = None
    try:
        key = crypto.derive_key(passphrase, salt, kdf)
        ciphertext, nonce, tag = crypto.encrypt(plaintext, key, header)
    except (HashingError, UnsupportedAlgorithm, ValueError, TypeError) as e:
        logger.error(f"Seal: cipher engine failure ({type(e).__name__})")
        raise EncryptError(f"Encryption failed: {type(e).__name__}") from e
    finally:
        if key is not None:
            crypto.clear_bytes(key)

    out = io.BytesIO()
    out.write(header)
    for field in (salt, nonce, tag, ciphertext):
        out.write(_LENGTH.pack(len(field)))
        out.write(field)
    return out.getvalue()


def _read_exact(stream: io.BytesIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise DecryptError("Vault container is truncated")
    return data


def _read_field(stream: io.BytesIO) -> bytes:
    (size,) = _LENGTH.unpack(_read_exact(stream, _LENGTH.size))
    return _read_exact(stream, size)


def unseal(container: bytes, passphrase: Passphrase) -> bytes:
    """
    Reverse seal(). Also opens legacy OpenSSL containers.

    Args:
        container: Container bytes as produced by seal()
        passphrase: The master password

    Returns:
        The original plaintext

    Raises:
        DecryptError: Wrong passphrase, tampered or truncated container,
            unknown magic, version or KDF
    """
    crypto = CryptoManager()

    if is_legacy_container(container):
        try:
            plaintext = crypto.decrypt_legacy(container, passphrase)
        except ValueError as e:
            raise DecryptError("Legacy container could not be decrypted") from e
        logger.info("Opened a legacy OpenSSL container; it is rewritten in the current format on save")
        return plaintext

    stream = io.BytesIO(container)
    header = _read_exact(stream, _HEADER.size)
    magic, version, kdf = _HEADER.unpack(header)
    if magic != config.MAGIC_BYTES:
        raise DecryptError("Not a Passman vault container")
    if version != config.CONTAINER_VERSION:
        raise DecryptError(f"Unsupported container version {version}")
    if kdf not in SUPPORTED_KDFS:
        raise DecryptError(f"Unsupported KDF identifier {kdf}")

    salt = _read_field(stream)
    nonce = _read_field(stream)
    tag = _read_field(stream)
    ciphertext = _read_field(stream)
    if stream.read(1):
        raise DecryptError("Trailing data after vault container")

    key = None
    try:
        key = crypto.derive_key(passphrase, salt, kdf)
        return crypto.decrypt(ciphertext, key, nonce, tag, header)
    except InvalidTag as e:
        raise DecryptError("Authentication failed") from e
    except (HashingError, ValueError) as e:
        raise DecryptError(f"Malformed vault container ({type(e).__name__})") from e
    finally:
        if key is not None:
            crypto.clear_bytes(key)


def seal_to_file(filepath: str, plaintext: bytes, passphrase: Passphrase, kdf: int = config.DEFAULT_KDF) -> None:
    """
    Seal plaintext and atomically replace filepath with the container.

    Raises:
        EncryptError: If sealing fails (nothing is written)
        PersistError: If writing or renaming fails (filepath is unchanged)
    """
    container = seal(plaintext, passphrase, kdf)
    try:
        utils.atomic_write_bytes(filepath, container)
    except OSError as e:
        logger.error(f"Error saving vault file {filepath}: {e}")
        raise PersistError(f"Failed to write vault file {filepath}: {e.strerror or e}") from e


def open_from_file(filepath: str, passphrase: Passphrase) -> bytes:
    """
    Read and unseal the container at filepath.

    Raises:
        DecryptError: If the file cannot be read or unsealed
    """
    try:
        with open(filepath, 'rb') as f:
            container = f.read()
    except OSError as e:
        raise DecryptError(f"Cannot read vault file {filepath}: {e.strerror or e}") from e
    return unseal(container, passphrase)
