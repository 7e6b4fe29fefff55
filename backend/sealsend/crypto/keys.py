# sealsend/crypto/keys.py
from dataclasses import dataclass
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, x25519

PUBLIC_KEY_LEN = 32
EXCHANGE_PRIVATE_KEY_LEN = 32
SIGNING_SEED_LEN = 32
# seed || public key, the layout other Ed25519 implementations export
SIGNING_PRIVATE_KEY_LEN = SIGNING_SEED_LEN + PUBLIC_KEY_LEN
SIGNATURE_LEN = 64


class InvalidKeyError(ValueError):
    pass


@dataclass(frozen=True)
class IdentityKeyPair:
    """
    Ed25519 signing pair proving control of a username.

    - public: raw 32 bytes, registered with the server
    - private: 64 bytes (seed followed by public), never leaves the client
    """
    public: bytes
    private: bytes


@dataclass(frozen=True)
class ExchangeKeyPair:
    """
    X25519 pair under which files addressed to a user are sealed.
    Also used for the one-time (ephemeral) sender pair of each file.
    """
    public: bytes
    private: bytes


def _raw_public(pk) -> bytes:
    return pk.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(sk) -> bytes:
    return sk.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def require_length(name: str, value: bytes, expected: int) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != expected:
        got = len(value) if isinstance(value, (bytes, bytearray)) else type(value).__name__
        raise InvalidKeyError(f"{name} must be {expected} bytes, got {got}")
    return bytes(value)


def generate_identity_keypair() -> IdentityKeyPair:
    sk = ed25519.Ed25519PrivateKey.generate()
    seed = _raw_private(sk)
    public = _raw_public(sk.public_key())
    return IdentityKeyPair(public=public, private=seed + public)


def generate_exchange_keypair() -> ExchangeKeyPair:
    sk = x25519.X25519PrivateKey.generate()
    return ExchangeKeyPair(public=_raw_public(sk.public_key()), private=_raw_private(sk))


def load_signing_key(private: bytes) -> ed25519.Ed25519PrivateKey:
    """Accept either the 64-byte seed||public form or a bare 32-byte seed."""
    if len(private) == SIGNING_PRIVATE_KEY_LEN:
        sk = ed25519.Ed25519PrivateKey.from_private_bytes(private[:SIGNING_SEED_LEN])
        if _raw_public(sk.public_key()) != private[SIGNING_SEED_LEN:]:
            raise InvalidKeyError("signing private key does not match its embedded public key")
        return sk
    require_length("signing private key", private, SIGNING_SEED_LEN)
    return ed25519.Ed25519PrivateKey.from_private_bytes(private)


def load_exchange_private_key(private: bytes) -> x25519.X25519PrivateKey:
    require_length("exchange private key", private, EXCHANGE_PRIVATE_KEY_LEN)
    return x25519.X25519PrivateKey.from_private_bytes(private)


def load_exchange_public_key(public: bytes) -> x25519.X25519PublicKey:
    require_length("exchange public key", public, PUBLIC_KEY_LEN)
    return x25519.X25519PublicKey.from_public_bytes(public)


def exchange_public_from_private(private: bytes) -> bytes:
    return _raw_public(load_exchange_private_key(private).public_key())


def identity_public_from_private(private: bytes) -> bytes:
    return _raw_public(load_signing_key(private).public_key())


def check_exchange_public_key(public: bytes) -> bytes:
    """
    Reject X25519 points of small order. Agreement with one of them yields an
    all-zero shared secret, which ``cryptography`` refuses to return.
    """
    pk = load_exchange_public_key(public)
    try:
        x25519.X25519PrivateKey.generate().exchange(pk)
    except ValueError as e:
        raise InvalidKeyError("exchange public key is a low-order point") from e
    return bytes(public)
