# sealsend/crypto/aead.py
import os
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16


class AeadError(ValueError):
    pass


def encrypt_aesgcm(key: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    """Return nonce || ciphertext || tag with a fresh random nonce."""
    if len(key) != KEY_LEN:
        raise ValueError("AES-256-GCM requires 32-byte key")
    nonce = os.urandom(NONCE_LEN)
    ct = AESGCM(key).encrypt(nonce, plaintext, aad)
    return nonce + ct


def decrypt_aesgcm(key: bytes, blob: bytes, aad: bytes = b"") -> bytes:
    if len(key) != KEY_LEN:
        raise ValueError("AES-256-GCM requires 32-byte key")
    if len(blob) < NONCE_LEN + TAG_LEN:
        raise AeadError("Invalid ciphertext blob")
    nonce = blob[:NONCE_LEN]
    ct = blob[NONCE_LEN:]
    try:
        return AESGCM(key).decrypt(nonce, ct, aad)
    except InvalidTag as e:
        raise AeadError("Authentication failed") from e
