"""Ed25519 signing through the Tendermint validator app on a Ledger device."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from valkms.errors import ErrorKind
from valkms.keys import Ed25519VerifyingKey, KeyAlgorithm, Signature

log = logging.getLogger(__name__)

CLA = 0x56
INS_GET_VERSION = 0x00
INS_PUBLIC_KEY_ED25519 = 0x01
INS_SIGN_ED25519 = 0x02

USER_MESSAGE_CHUNK_SIZE = 250
MAX_CHUNKS = 255
RETCODE_OK = 0x9000
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64


class LedgerError(Exception):
    """Error reported while talking to the Ledger validator app."""

    class Kind(Enum):
        INVALID_VERSION = "This version is not supported"
        INVALID_EMPTY_MESSAGE = "message cannot be empty"
        INVALID_MESSAGE_SIZE = "message size is invalid (too big)"
        INVALID_PK = "received an invalid PK"
        NO_SIGNATURE = "received no signature back"
        INVALID_SIGNATURE = "received an invalid signature"
        LEDGER = "ledger error"

    def __init__(self, kind: "LedgerError.Kind", cause: Optional[BaseException] = None) -> None:
        self.kind = kind
        self.cause = cause
        super().__init__(kind.value)

    def __str__(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class ApduCommand:
    """A command sent to the device."""

    cla: int
    ins: int
    p1: int = 0
    p2: int = 0
    length: int = 0
    data: bytes = b""

    def to_bytes(self) -> bytes:
        """Serialize as header bytes followed by the data."""
        return bytes([self.cla, self.ins, self.p1, self.p2, self.length]) + bytes(self.data)


@dataclass(frozen=True)
class ApduAnswer:
    """A response received from the device."""

    data: bytes = b""
    retcode: int = 0


@dataclass(frozen=True)
class Version:
    """Version of the validator app."""

    mode: int
    major: int
    minor: int
    patch: int


class Transport(Protocol):
    """Anything that exchanges APDU commands with a device."""

    def exchange(self, command: ApduCommand) -> ApduAnswer:
        ...


@dataclass
class TendermintValidatorApp:
    """Client for the Tendermint validator app reached through a transport."""

    transport: Transport

    def _exchange(self, command: ApduCommand) -> ApduAnswer:
        try:
            return self.transport.exchange(command)
        except LedgerError:
            raise
        except Exception as exc:
            raise LedgerError(LedgerError.Kind.LEDGER, exc) from exc

    def version(self) -> Version:
        """Ask the app for its version."""
        response = self._exchange(ApduCommand(CLA, INS_GET_VERSION))
        if response.retcode != RETCODE_OK or len(response.data) < 4:
            raise LedgerError(LedgerError.Kind.INVALID_VERSION)
        mode, major, minor, patch = response.data[:4]
        return Version(mode, major, minor, patch)

    def public_key(self) -> bytes:
        """Ask the app for its 32-byte Ed25519 public key."""
        response = self._exchange(ApduCommand(CLA, INS_PUBLIC_KEY_ED25519))
        if response.retcode != RETCODE_OK:
            log.warning("retcode=%X", response.retcode)
        if len(response.data) != PUBLIC_KEY_SIZE:
            raise LedgerError(LedgerError.Kind.INVALID_PK)
        return bytes(response.data)

    def sign(self, message: bytes) -> bytes:
        """Sign a message, sending it in chunks, and return the 64-byte signature."""
        message = bytes(message)
        chunks = [
            message[start:start + USER_MESSAGE_CHUNK_SIZE]
            for start in range(0, len(message), USER_MESSAGE_CHUNK_SIZE)
        ]
        if len(chunks) > MAX_CHUNKS:
            raise LedgerError(LedgerError.Kind.INVALID_MESSAGE_SIZE)
        if not chunks:
            raise LedgerError(LedgerError.Kind.INVALID_EMPTY_MESSAGE)

        packet_count = len(chunks)
        response = ApduAnswer()
        for packet_idx, chunk in enumerate(chunks, start=1):
            command = ApduCommand(
                cla=CLA,
                ins=INS_SIGN_ED25519,
                p1=packet_idx,
                p2=packet_count,
                length=len(chunk),
                data=chunk,
            )
            response = self._exchange(command)

        if not response.data and response.retcode == RETCODE_OK:
            raise LedgerError(LedgerError.Kind.NO_SIGNATURE)
        if len(response.data) != SIGNATURE_SIZE:
            raise LedgerError(LedgerError.Kind.INVALID_SIGNATURE)
        return bytes(response.data)


@dataclass
class Ed25519LedgerTmAppSigner:
    """Ed25519 signature provider backed by the Ledger validator app."""

    app: TendermintValidatorApp
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def verifying_key(self) -> Ed25519VerifyingKey:
        """The public key of the connected validator app."""
        with self._lock:
            key_bytes = self.app.public_key()
        return Ed25519VerifyingKey.from_bytes(key_bytes)

    def try_sign(self, msg: bytes) -> Signature:
        """Sign a message with the device, raising a signing error on failure."""
        with self._lock:
            try:
                sig = self.app.sign(msg)
            except LedgerError as exc:
                raise ErrorKind.SIGNING_ERROR.error(exc) from exc
        return Signature(KeyAlgorithm.ED25519, sig)