"""
userpass - Cryptography Module

Primitives for the built-in "vault" backend, which encrypts a whole record
file under a passphrase without calling out to GnuPG.

Security Architecture:
    1. Passphrase + random salt -> scrypt -> file key (32 bytes)
    2. File key -> AES-256-GCM over the plaintext record stream
    3. The header (KDF parameters + salt) is bound as associated data,
       so it cannot be swapped or edited without decryption failing

Sealed file layout:

    MAGIC (4) | header length (2, big endian) | header JSON | nonce (12) | ciphertext+tag

A fresh salt and nonce are drawn on every save, so re-encrypting unchanged
plaintext still produces different bytes.
"""

import os
import json
import struct
import secrets
import string
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CipherError


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32            # 256-bit key
NONCE_SIZE = 12          # 96-bit nonce for AES-GCM
SALT_SIZE = 16

# scrypt parameters (tuned for ~250ms on modern CPU)
# N = CPU/memory cost (power of 2), r = block size, p = parallelization
SCRYPT_N = 2**17         # 131072 - uses ~16 MB RAM
SCRYPT_R = 8
SCRYPT_P = 1

MAGIC = b"UPV1"
AEAD_ALGO = "aes256gcm"


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(passphrase: str, salt: bytes, n: int = SCRYPT_N,
               r: int = SCRYPT_R, p: int = SCRYPT_P) -> bytes:
    """
    Derive a file key from a passphrase using scrypt.

    Args:
        passphrase: User's secret
        salt: Random salt stored in the file header (not secret)
        n, r, p: scrypt cost parameters (read back from the header)

    Returns:
        32-byte key
    """
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=n, r=r, p=p)
    return kdf.derive(passphrase.encode('utf-8'))


# =============================================================================
# Canonical Associated Data
# =============================================================================

def canonical_ad(ad: dict) -> bytes:
    """
    Convert associated data to canonical JSON bytes.

    Same dict always gives the same bytes: sorted keys, compact separators,
    UTF-8 without escaping.
    """
    json_str = json.dumps(ad, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def encrypt(key: bytes, plaintext: bytes, associated_data: bytes) -> Tuple[bytes, bytes]:
    """
    Encrypt data with AES-256-GCM.

    Returns:
        (nonce, ciphertext) - the ciphertext carries the 16-byte tag
    """
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    return nonce, ciphertext


def decrypt(key: bytes, nonce: bytes, ciphertext: bytes, associated_data: bytes) -> bytes:
    """
    Decrypt AES-256-GCM ciphertext.

    Raises:
        cryptography.exceptions.InvalidTag: wrong key, tampered data or AD
    """
    return AESGCM(key).decrypt(nonce, ciphertext, associated_data)


# =============================================================================
# Sealed Files
# =============================================================================

def seal(passphrase: str, plaintext: bytes, n: int = SCRYPT_N) -> bytes:
    """
    Encrypt a record stream into the sealed file format.

    Args:
        passphrase: User's secret
        plaintext: Encoded records
        n: scrypt cost (stored in the header)

    Returns:
        Bytes ready to be written to disk
    """
    salt = os.urandom(SALT_SIZE)
    header = canonical_ad({
        "kdf": "scrypt",
        "n": n,
        "r": SCRYPT_R,
        "p": SCRYPT_P,
        "salt": salt.hex(),
        "aead": AEAD_ALGO,
    })
    key = derive_key(passphrase, salt, n=n)
    nonce, ciphertext = encrypt(key, plaintext, header)
    return MAGIC + struct.pack(">H", len(header)) + header + nonce + ciphertext


def unseal(passphrase: str, blob: bytes) -> bytes:
    """
    Decrypt a sealed file.

    Raises:
        CipherError: Not a sealed file, wrong passphrase, or tampered
    """
    header, nonce, ciphertext = _split(blob)
    try:
        params = json.loads(header.decode('utf-8'))
        salt = bytes.fromhex(params["salt"])
        key = derive_key(passphrase, salt, n=params["n"], r=params["r"], p=params["p"])
    except (ValueError, KeyError, TypeError) as e:
        raise CipherError(f"Corrupt header: {e}") from e
    try:
        return decrypt(key, nonce, ciphertext, header)
    except InvalidTag:
        raise CipherError("Wrong passphrase or file has been tampered with")


def _split(blob: bytes) -> Tuple[bytes, bytes, bytes]:
    """Split a sealed file into (header, nonce, ciphertext)."""
    if not blob.startswith(MAGIC):
        raise CipherError("Not a userpass vault file")
    offset = len(MAGIC)
    if len(blob) < offset + 2:
        raise CipherError("Truncated vault file")
    (header_len,) = struct.unpack(">H", blob[offset:offset + 2])
    offset += 2
    header = blob[offset:offset + header_len]
    offset += header_len
    nonce = blob[offset:offset + NONCE_SIZE]
    ciphertext = blob[offset + NONCE_SIZE:]
    if len(header) != header_len or len(nonce) != NONCE_SIZE or not ciphertext:
        raise CipherError("Truncated vault file")
    return header, nonce, ciphertext


# =============================================================================
# Password Generation
# =============================================================================

def generate_password(length: int = 20, use_symbols: bool = True) -> str:
    """
    Generate a strong random password.

    Character sets:
    - Letters and digits always
    - Symbols !@#$%^&*()_+-= optionally

    Tabs and newlines are never produced, so the result is always safe to
    store in a record line.
    """
    if length < 1:
        raise ValueError("Password length must be at least 1")

    chars = string.ascii_letters + string.digits
    if use_symbols:
        chars += "!@#$%^&*()_+-="

    # secrets.choice() uses os.urandom()
    return ''.join(secrets.choice(chars) for _ in range(length))
