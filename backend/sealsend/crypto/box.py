"""
Public-key authenticated encryption for file transfer.

The sender's exchange private key and the recipient's exchange public key
agree on a shared secret (X25519); HKDF-SHA256 turns it into an AES-256-GCM
key bound to both public keys. Output layout is ``nonce || ciphertext || tag``.

This is not the NaCl ``crypto_box`` construction (XSalsa20-Poly1305 with a
24-byte nonce). Ciphertext produced here only opens with this module, so
clients speaking NaCl boxes cannot read it and vice versa.

With the ephemeral sender pattern (``seal_for_recipient``) the sender pair is
generated per file and its private half is dropped right after encryption, so
the recipient only needs the stored ephemeral public key and its own
long-term exchange private key to open the file.
"""
from __future__ import annotations

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from sealsend.crypto.aead import NONCE_LEN, TAG_LEN, decrypt_aesgcm, encrypt_aesgcm
from sealsend.crypto.keys import (
    InvalidKeyError,
    exchange_public_from_private,
    generate_exchange_keypair,
    load_exchange_private_key,
    load_exchange_public_key,
)

BOX_INFO = b"sealsend-box-v1"
OVERHEAD = NONCE_LEN + TAG_LEN


class DecryptionError(Exception):
    """Wrong key, tampered data or truncated input. Never carries plaintext."""


def _derive_key(private: bytes, peer_public: bytes, sender_public: bytes, recipient_public: bytes) -> bytes:
    sk = load_exchange_private_key(private)
    pk = load_exchange_public_key(peer_public)
    try:
        shared = sk.exchange(pk)
    except ValueError as e:
        # all-zero secret: the peer key is a low-order point
        raise InvalidKeyError("exchange public key is a low-order point") from e
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=BOX_INFO + sender_public + recipient_public,
    )
    return hkdf.derive(shared)


def encrypt(plaintext: bytes, recipient_exchange_pub: bytes, sender_exchange_priv: bytes) -> bytes:
    sender_pub = exchange_public_from_private(sender_exchange_priv)
    key = _derive_key(sender_exchange_priv, recipient_exchange_pub, sender_pub, recipient_exchange_pub)
    return encrypt_aesgcm(key, plaintext, aad=sender_pub + recipient_exchange_pub)


def decrypt(ciphertext: bytes, sender_exchange_pub: bytes, recipient_exchange_priv: bytes) -> bytes:
    if len(ciphertext) < OVERHEAD:
        raise DecryptionError("message too short")
    try:
        recipient_pub = exchange_public_from_private(recipient_exchange_priv)
        key = _derive_key(recipient_exchange_priv, sender_exchange_pub, sender_exchange_pub, recipient_pub)
        return decrypt_aesgcm(key, ciphertext, aad=sender_exchange_pub + recipient_pub)
    except ValueError as e:
        # AeadError and InvalidKeyError are both ValueErrors
        raise DecryptionError("decryption failed") from e


def seal_for_recipient(plaintext: bytes, recipient_exchange_pub: bytes) -> tuple[bytes, bytes]:
    """
    Encrypt under a fresh one-time sender pair.

    Returns:
        (ephemeral_public_key, ciphertext). The ephemeral private key is not
        returned and goes out of scope here.
    """
    ephemeral = generate_exchange_keypair()
    ciphertext = encrypt(plaintext, recipient_exchange_pub, ephemeral.private)
    return ephemeral.public, ciphertext


def open_from_sender(ciphertext: bytes, ephemeral_pub: bytes, recipient_exchange_priv: bytes) -> bytes:
    return decrypt(ciphertext, ephemeral_pub, recipient_exchange_priv)
