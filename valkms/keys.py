"""Public keys, signatures, verifying keys and signers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from valkms.errors import ErrorKind, KmsError

ED25519_PUBLIC_KEY_SIZE = 32
SECP256K1_PUBLIC_KEY_SIZE = 33
SIGNATURE_SIZE = 64


class SigningProvider(Enum):
    """Signing key providers."""

    YUBIHSM = "yubihsm"
    LEDGER_TM = "ledgertm"
    SOFT_SIGN = "softsign"
    FORTANIX_DSM = "fortanixdsm"

    def __str__(self) -> str:
        return self.value


class KeyAlgorithm(Enum):
    """Signature algorithms supported for keys."""

    ED25519 = "ed25519"
    SECP256K1 = "secp256k1"


class KeyRole(Enum):
    """Whether a key is used for accounts or for consensus."""

    ACCOUNT = "account"
    CONSENSUS = "consensus"


_PUBLIC_KEY_SIZES = {
    KeyAlgorithm.ED25519: ED25519_PUBLIC_KEY_SIZE,
    KeyAlgorithm.SECP256K1: SECP256K1_PUBLIC_KEY_SIZE,
}


@dataclass(frozen=True)
class PublicKey:
    """Raw public key bytes tagged with their algorithm."""

    algorithm: KeyAlgorithm
    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        expected = _PUBLIC_KEY_SIZES[self.algorithm]
        if len(self.data) != expected:
            raise ErrorKind.INVALID_KEY.error(
                f"{self.algorithm.value} public key must be {expected} bytes, "
                f"got {len(self.data)}"
            )


@dataclass(frozen=True)
class TendermintKey:
    """A public key together with the role it plays."""

    role: KeyRole
    public_key: PublicKey


@dataclass(frozen=True)
class Signature:
    """Cryptographic signature used for block signing."""

    algorithm: KeyAlgorithm
    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) != SIGNATURE_SIZE:
            raise ErrorKind.CRYPTO_ERROR.error(
                f"signature must be {SIGNATURE_SIZE} bytes, got {len(self.data)}"
            )

    def to_bytes(self) -> bytes:
        """Serialize this signature as bytes."""
        return self.data


class Ed25519VerifyingKey:
    """Ed25519 verification key."""

    BYTE_SIZE = ED25519_PUBLIC_KEY_SIZE

    def __init__(self, key: Ed25519PublicKey) -> None:
        self._key = key

    @classmethod
    def from_bytes(cls, data: bytes) -> "Ed25519VerifyingKey":
        """Parse a verifying key from its 32-byte encoding."""
        data = bytes(data)
        if len(data) != cls.BYTE_SIZE:
            raise KmsError(ErrorKind.INVALID_KEY)
        try:
            return cls(Ed25519PublicKey.from_public_bytes(data))
        except ValueError as exc:
            raise KmsError(ErrorKind.INVALID_KEY) from exc

    @classmethod
    def from_signing_key(cls, signing_key: Ed25519PrivateKey) -> "Ed25519VerifyingKey":
        """Derive the verifying key of an Ed25519 signing key."""
        return cls(signing_key.public_key())

    def as_bytes(self) -> bytes:
        """The 32-byte encoding of this key."""
        return self._key.public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )

    def verify(self, msg: bytes, signature: Union[Signature, bytes]) -> None:
        """Verify a signature over a message, raising on failure."""
        sig_bytes = signature.to_bytes() if isinstance(signature, Signature) else bytes(signature)
        try:
            self._key.verify(sig_bytes, bytes(msg))
        except InvalidSignature as exc:
            raise ErrorKind.CRYPTO_ERROR.error("signature verification failed") from exc

    def to_public_key(self) -> PublicKey:
        """Convert into a tagged public key."""
        return PublicKey(KeyAlgorithm.ED25519, self.as_bytes())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ed25519VerifyingKey):
            return NotImplemented
        return self.as_bytes() == other.as_bytes()

    def __hash__(self) -> int:
        return hash(self.as_bytes())

    def __repr__(self) -> str:
        return f"Ed25519VerifyingKey({self.as_bytes().hex()})"


SignFunction = Callable[[bytes], Union[Signature, bytes]]


@dataclass(frozen=True)
class Signer:
    """A signing backend bound to a provider and a public key."""

    provider: SigningProvider
    public_key: TendermintKey
    signer: SignFunction

    @property
    def algorithm(self) -> KeyAlgorithm:
        return self.public_key.public_key.algorithm

    def sign(self, msg: bytes) -> Signature:
        """Sign the given message using this signer."""
        try:
            result = self.signer(bytes(msg))
            if isinstance(result, Signature):
                if result.algorithm is not self.algorithm:
                    raise ValueError(
                        f"expected {self.algorithm.value} signature, "
                        f"got {result.algorithm.value}"
                    )
                return result
            return Signature(self.algorithm, bytes(result))
        except Exception as exc:
            raise ErrorKind.SIGNING_ERROR.error(exc) from exc