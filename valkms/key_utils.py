"""Loading, storing and generating Base64-encoded secret keys."""

from __future__ import annotations

import base64
import binascii
import os
from pathlib import Path
from typing import Tuple, Union

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from valkms.errors import ErrorKind

SECRET_FILE_PERMS = 0o600
"""File permissions for secret data."""

ED25519_SECRET_KEY_SIZE = 32
SECP256K1_SECRET_KEY_SIZE = 32
_SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)

PathLike = Union[str, "os.PathLike[str]"]


def load_base64_secret(path: PathLike) -> bytes:
    """Load Base64-encoded secret data from the given path."""
    display = Path(path)
    try:
        text = Path(path).read_text()
    except (OSError, UnicodeDecodeError) as exc:
        raise ErrorKind.IO_ERROR.error(f"couldn't read key from {display}: {exc}") from exc
    try:
        return base64.b64decode(text.rstrip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ErrorKind.IO_ERROR.error(f"can't decode key from `{display}`: {exc}") from exc


def load_base64_ed25519_key(path: PathLike) -> Ed25519PrivateKey:
    """Load a Base64-encoded Ed25519 secret key."""
    key_bytes = load_base64_secret(path)
    if len(key_bytes) != ED25519_SECRET_KEY_SIZE:
        raise ErrorKind.INVALID_KEY.error(
            f"invalid Ed25519 key: expected {ED25519_SECRET_KEY_SIZE} bytes, "
            f"got {len(key_bytes)}"
        )
    try:
        return Ed25519PrivateKey.from_private_bytes(key_bytes)
    except ValueError as exc:
        raise ErrorKind.INVALID_KEY.error(f"invalid Ed25519 key: {exc}") from exc


def load_base64_secp256k1_key(
    path: PathLike,
) -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Load a Base64-encoded secp256k1 secret key and its public key."""
    key_bytes = load_base64_secret(path)
    if len(key_bytes) != SECP256K1_SECRET_KEY_SIZE:
        raise ErrorKind.INVALID_KEY.error(
            f"invalid ECDSA key: expected {SECP256K1_SECRET_KEY_SIZE} bytes, "
            f"got {len(key_bytes)}"
        )
    scalar = int.from_bytes(key_bytes, "big")
    if not 0 < scalar < _SECP256K1_ORDER:
        raise ErrorKind.INVALID_KEY.error("invalid ECDSA key: scalar out of range")
    try:
        signing = ec.derive_private_key(scalar, ec.SECP256K1())
    except ValueError as exc:
        raise ErrorKind.INVALID_KEY.error(f"invalid ECDSA key: {exc}") from exc
    return signing, signing.public_key()


def write_base64_secret(path: PathLike, data: bytes) -> None:
    """Store Base64-encoded secret data at the given path."""
    encoded = base64.b64encode(bytes(data))
    try:
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, SECRET_FILE_PERMS)
        with os.fdopen(fd, "wb") as file:
            file.write(encoded)
    except OSError as exc:
        raise ErrorKind.IO_ERROR.error(f"couldn't write `{Path(path)}`: {exc}") from exc


def generate_key(path: PathLike) -> None:
    """Generate a random Ed25519 secret connection key at the given path."""
    write_base64_secret(path, os.urandom(ED25519_SECRET_KEY_SIZE))