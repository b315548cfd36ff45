"""Error kinds and the error type raised throughout the package."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Kinds of errors, each carrying its human-readable description."""

    ACCESS_ERROR = "access denied"
    CHAIN_ID_ERROR = "chain ID error"
    CONFIG_ERROR = "config error"
    CRYPTO_ERROR = "cryptographic error"
    DOUBLE_SIGN = "attempted double sign"
    EXCEED_MAX_HEIGHT = "requested signature above stop height"
    FORTANIX_DSM_ERROR = "Fortanix DSM error"
    HOOK_ERROR = "subcommand hook failed"
    INVALID_KEY = "invalid key"
    INVALID_MESSAGE_ERROR = "invalid consensus message"
    IO_ERROR = "I/O error"
    PANIC_ERROR = "internal crash"
    PARSE_ERROR = "parse error"
    POISON_ERROR = "internal state poisoned"
    PROTOCOL_ERROR = "protocol error"
    SERIALIZATION_ERROR = "serialization error"
    SIGNING_ERROR = "signing operation failed"
    TENDERMINT_ERROR = "Tendermint error"
    VERIFICATION_ERROR = "verification failed"
    YUBIHSM_ERROR = "YubiHSM error"

    def __str__(self) -> str:
        return self.value

    def error(self, message: object = None) -> "KmsError":
        """Create an error of this kind with an optional message."""
        return KmsError(self, message)


class KmsError(Exception):
    """Error carrying an `ErrorKind` and an optional message."""

    def __init__(self, kind: ErrorKind, message: object = None) -> None:
        self.kind = kind
        self.message = None if message is None else str(message)
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.message is None:
            return str(self.kind)
        return f"{self.kind}: {self.message}"

    def __repr__(self) -> str:
        return f"KmsError({self.kind.name}, {self.message!r})"

    @classmethod
    def from_panic(cls, panic_msg: object) -> "KmsError":
        """Create an error from the payload of an internal crash."""
        message = panic_msg if isinstance(panic_msg, str) else "unknown cause"
        if "PoisonError" in message:
            kind = ErrorKind.POISON_ERROR
        else:
            kind = ErrorKind.PANIC_ERROR
        return cls(kind, message)