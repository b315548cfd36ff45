"""Remote procedure calls between a validator node and the KMS."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from valkms.errors import ErrorKind
from valkms.keys import KeyAlgorithm, PublicKey, TendermintKey
from valkms.privval import (
    Proposal,
    SignableMsg,
    Vote,
    decode_proposal,
    decode_vote,
    encode_proposal,
    encode_vote,
    validate_chain_id,
)
from valkms.protobuf import (
    WIRE_LEN,
    DecodeError,
    MessageWriter,
    decode_length_delimited,
    encode_length_delimited,
    iter_fields,
)

DATA_MAX_SIZE = 1024
"""Largest chunk of data read from a connection at once."""

# Field numbers of the `sum` oneof in the privval `Message`.
_PUB_KEY_REQUEST = 1
_PUB_KEY_RESPONSE = 2
_SIGN_VOTE_REQUEST = 3
_SIGNED_VOTE_RESPONSE = 4
_SIGN_PROPOSAL_REQUEST = 5
_SIGNED_PROPOSAL_RESPONSE = 6
_PING_REQUEST = 7
_PING_RESPONSE = 8
_SUM_FIELDS = range(_PUB_KEY_REQUEST, _PING_RESPONSE + 1)

_PUBLIC_KEY_FIELDS = {KeyAlgorithm.ED25519: 1, KeyAlgorithm.SECP256K1: 2}


class RequestKind(Enum):
    """Kinds of requests sent to the KMS."""

    SIGN_PROPOSAL = "sign_proposal"
    SIGN_VOTE = "sign_vote"
    SHOW_PUBLIC_KEY = "show_public_key"
    PING = "ping"


@dataclass(frozen=True)
class _Sum:
    """The decoded `sum` of a privval message."""

    field: Optional[int] = None
    body: Optional[bytes] = None
    chain_id: str = ""


def _decode_string(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"invalid UTF-8 string: {exc}") from exc


def _len_fields(data: bytes):
    """Yield (field, value) for fields that must be length-delimited."""
    for num, wire_type, value in iter_fields(data):
        yield num, wire_type, value


def _decode_request_body(field: int, data: bytes) -> Tuple[Optional[bytes], str]:
    body: Optional[bytes] = None
    chain_id = ""
    if field in (_SIGN_VOTE_REQUEST, _SIGN_PROPOSAL_REQUEST):
        for num, wire_type, value in iter_fields(data):
            if num in (1, 2) and wire_type != WIRE_LEN:
                raise DecodeError(f"invalid wire type {wire_type} for field {num}")
            if num == 1:
                body = value
            elif num == 2:
                chain_id = _decode_string(value)
    elif field == _PUB_KEY_REQUEST:
        for num, wire_type, value in iter_fields(data):
            if num == 1:
                if wire_type != WIRE_LEN:
                    raise DecodeError(f"invalid wire type {wire_type} for field {num}")
                chain_id = _decode_string(value)
    else:
        # Other variants are only checked for well-formedness.
        for _ in iter_fields(data):
            pass
    return body, chain_id


def _decode_message(data: bytes) -> _Sum:
    payload = decode_length_delimited(data)
    selected: Optional[Tuple[int, bytes]] = None
    for num, wire_type, value in iter_fields(payload):
        if num in _SUM_FIELDS:
            if wire_type != WIRE_LEN:
                raise DecodeError(f"invalid wire type {wire_type} for field {num}")
            selected = (num, value)
    if selected is None:
        return _Sum()
    field, value = selected
    body, chain_id = _decode_request_body(field, value)
    return _Sum(field, body, chain_id)


def _read_msg(conn) -> bytes:
    try:
        data = conn.read(DATA_MAX_SIZE)
    except OSError as exc:
        raise ErrorKind.IO_ERROR.error(exc) from exc
    return bytes(data or b"")


@dataclass
class Request:
    """A request to the KMS."""

    kind: RequestKind
    message: Optional[Union[Proposal, Vote]] = None

    @classmethod
    def read(cls, conn, expected_chain_id: str) -> "Request":
        """Read a request from a readable connection and check its chain ID."""
        buffer = bytearray()
        while True:
            chunk = _read_msg(conn)
            buffer += chunk
            try:
                decoded = _decode_message(bytes(buffer))
                break
            except DecodeError as exc:
                # A short chunk means the message ended and is malformed;
                # a full chunk means more data may follow.
                if len(chunk) < DATA_MAX_SIZE:
                    raise ErrorKind.PROTOCOL_ERROR.error(
                        f"malformed message packet: {exc}"
                    ) from exc

        if decoded.field == _SIGN_VOTE_REQUEST and decoded.body is not None:
            request = cls(RequestKind.SIGN_VOTE, decode_vote(decoded.body))
        elif decoded.field == _SIGN_PROPOSAL_REQUEST and decoded.body is not None:
            request = cls(RequestKind.SIGN_PROPOSAL, decode_proposal(decoded.body))
        elif decoded.field == _PUB_KEY_REQUEST:
            request = cls(RequestKind.SHOW_PUBLIC_KEY)
        elif decoded.field == _PING_REQUEST:
            return cls(RequestKind.PING)
        else:
            description = "none" if decoded.field is None else f"field {decoded.field}"
            raise ErrorKind.PROTOCOL_ERROR.error(f"invalid RPC message: {description}")

        if validate_chain_id(decoded.chain_id) != expected_chain_id:
            raise ErrorKind.CHAIN_ID_ERROR.error(
                f"got unexpected chain ID: {decoded.chain_id} "
                f"(expecting: {expected_chain_id})"
            )
        return request

    def into_signable_msg(self) -> SignableMsg:
        """Convert this request into a message to be signed."""
        if self.kind in (RequestKind.SIGN_PROPOSAL, RequestKind.SIGN_VOTE):
            return SignableMsg(self.message)
        raise ErrorKind.INVALID_MESSAGE_ERROR.error(
            f"expected a signable message type: {self!r}"
        )


@dataclass(frozen=True)
class RemoteSignerError:
    """Error reported back to the validator."""

    code: int
    description: str

    def encode(self) -> bytes:
        return MessageWriter().varint(1, self.code).string(2, self.description).to_bytes()


class _ResponseKind(Enum):
    PUBLIC_KEY = _PUB_KEY_RESPONSE
    SIGNED_VOTE = _SIGNED_VOTE_RESPONSE
    SIGNED_PROPOSAL = _SIGNED_PROPOSAL_RESPONSE
    PING = _PING_RESPONSE


@dataclass
class Response:
    """A response from the KMS."""

    kind: _ResponseKind
    vote: Optional[Vote] = None
    proposal: Optional[Proposal] = None
    pub_key: Optional[PublicKey] = None
    signer_error: Optional[RemoteSignerError] = None

    @classmethod
    def error(cls, msg: SignableMsg, error: RemoteSignerError) -> "Response":
        """Construct an error response for the given message."""
        if isinstance(msg.message, Proposal):
            return cls(_ResponseKind.SIGNED_PROPOSAL, signer_error=error)
        return cls(_ResponseKind.SIGNED_VOTE, signer_error=error)

    @classmethod
    def from_signable(cls, msg: SignableMsg) -> "Response":
        """Construct a response carrying a signed message."""
        if isinstance(msg.message, Proposal):
            return cls(_ResponseKind.SIGNED_PROPOSAL, proposal=msg.message)
        return cls(_ResponseKind.SIGNED_VOTE, vote=msg.message)

    @classmethod
    def ping(cls) -> "Response":
        return cls(_ResponseKind.PING)

    @classmethod
    def public_key(cls, public_key: Union[PublicKey, TendermintKey]) -> "Response":
        """Construct a public key response."""
        if isinstance(public_key, TendermintKey):
            public_key = public_key.public_key
        return cls(_ResponseKind.PUBLIC_KEY, pub_key=public_key)

    def _error_bytes(self) -> Optional[bytes]:
        return None if self.signer_error is None else self.signer_error.encode()

    def _body(self) -> bytes:
        writer = MessageWriter()
        if self.kind is _ResponseKind.SIGNED_VOTE:
            writer.message(1, None if self.vote is None else encode_vote(self.vote))
            writer.message(2, self._error_bytes())
        elif self.kind is _ResponseKind.SIGNED_PROPOSAL:
            writer.message(
                1, None if self.proposal is None else encode_proposal(self.proposal)
            )
            writer.message(2, self._error_bytes())
        elif self.kind is _ResponseKind.PUBLIC_KEY:
            key_bytes = None
            if self.pub_key is not None:
                key_bytes = (
                    MessageWriter()
                    .bytes_field(_PUBLIC_KEY_FIELDS[self.pub_key.algorithm], self.pub_key.data)
                    .to_bytes()
                )
            writer.message(1, key_bytes)
            writer.message(2, self._error_bytes())
        return writer.to_bytes()

    def encode(self) -> bytes:
        """Encode this response as a length-prefixed privval message."""
        outer = MessageWriter().message(self.kind.value, self._body()).to_bytes()
        return encode_length_delimited(outer)