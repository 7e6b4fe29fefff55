# sealsend/crypto/signatures.py
from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519

from sealsend.crypto.keys import PUBLIC_KEY_LEN, SIGNATURE_LEN, load_signing_key


def sign_ed25519_raw(private_sign_key_raw: bytes, payload: bytes) -> bytes:
    sk = load_signing_key(private_sign_key_raw)
    return sk.sign(payload)


def verify_ed25519_raw(public_sign_key_raw: bytes, signature: bytes, payload: bytes) -> bool:
    # Malformed inputs are a failed verification, not an error
    if len(public_sign_key_raw) != PUBLIC_KEY_LEN or len(signature) != SIGNATURE_LEN:
        return False
    try:
        pk = ed25519.Ed25519PublicKey.from_public_bytes(public_sign_key_raw)
        pk.verify(signature, payload)
        return True
    except (InvalidSignature, ValueError):
        return False
