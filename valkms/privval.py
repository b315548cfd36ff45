"""Validator private key operations: signing consensus votes and proposals."""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Union

from valkms.errors import ErrorKind
from valkms.keys import Signature
from valkms.protobuf import (
    DecodeError,
    MessageWriter,
    encode_length_delimited,
    iter_fields,
    to_signed32,
    to_signed64,
)

MAX_CHAIN_ID_LENGTH = 50
HASH_SIZE = 32
ADDRESS_SIZE = 20
SIGNATURE_SIZE = 64
_CHAIN_ID_CHARS = frozenset(string.ascii_letters + string.digits + "-_.")


class SignedMsgType(IntEnum):
    """Type of signed message in the consensus."""

    UNKNOWN = 0x00
    PREVOTE = 0x01
    PRECOMMIT = 0x02
    PROPOSAL = 0x20

    @classmethod
    def from_code(cls, code: int) -> "SignedMsgType":
        try:
            return cls(code)
        except ValueError:
            raise ErrorKind.PARSE_ERROR.error(f"invalid signed message type: {code}") from None

    def is_unknown(self) -> bool:
        return self is SignedMsgType.UNKNOWN


class VoteType(IntEnum):
    """Kinds of votes."""

    PREVOTE = 1
    PRECOMMIT = 2


def validate_chain_id(chain_id: str) -> str:
    """Check a chain ID is well formed and return it."""
    if not chain_id or len(chain_id) > MAX_CHAIN_ID_LENGTH:
        raise ErrorKind.TENDERMINT_ERROR.error(f"invalid chain ID length: {chain_id!r}")
    if any(c not in _CHAIN_ID_CHARS for c in chain_id):
        raise ErrorKind.TENDERMINT_ERROR.error(f"invalid character in chain ID: {chain_id!r}")
    return chain_id


@dataclass(frozen=True)
class Timestamp:
    seconds: int
    nanos: int = 0

    def encode(self) -> bytes:
        return MessageWriter().varint(1, self.seconds).varint(2, self.nanos).to_bytes()


@dataclass(frozen=True)
class PartSetHeader:
    total: int = 0
    hash: bytes = b""

    def encode(self) -> bytes:
        return MessageWriter().varint(1, self.total).bytes_field(2, self.hash).to_bytes()


@dataclass(frozen=True)
class BlockId:
    hash: bytes = b""
    part_set_header: PartSetHeader = field(default_factory=PartSetHeader)

    def encode(self) -> bytes:
        return (
            MessageWriter()
            .bytes_field(1, self.hash)
            .message(2, self.part_set_header.encode())
            .to_bytes()
        )

    def prefix(self) -> str:
        return self.hash.hex().upper()[:12]


@dataclass(frozen=True)
class ConsensusState:
    height: int
    round: int
    step: int
    block_id: Optional[BlockId]

    def block_id_prefix(self) -> str:
        return self.block_id.prefix() if self.block_id else "<nil>"

    def __str__(self) -> str:
        return f"{self.height}/{self.round}/{self.step}"


@dataclass
class Proposal:
    height: int
    round: int
    pol_round: Optional[int] = None
    block_id: Optional[BlockId] = None
    timestamp: Optional[Timestamp] = None
    signature: Optional[bytes] = None


@dataclass
class Vote:
    vote_type: VoteType
    height: int
    round: int
    block_id: Optional[BlockId]
    timestamp: Optional[Timestamp]
    validator_address: bytes
    validator_index: int
    signature: Optional[bytes] = None
    extension: bytes = b""
    extension_signature: Optional[bytes] = None


def _invalid(message: str):
    return ErrorKind.TENDERMINT_ERROR.error(message)


def _decode_timestamp(data: bytes) -> Timestamp:
    seconds = nanos = 0
    for num, _, value in iter_fields(data):
        if num == 1:
            seconds = to_signed64(value)
        elif num == 2:
            nanos = to_signed32(value)
    return Timestamp(seconds, nanos)


def _check_hash(value: bytes) -> bytes:
    if len(value) not in (0, HASH_SIZE):
        raise _invalid(f"invalid hash length: {len(value)}")
    return value


def _decode_block_id(data: bytes) -> Optional[BlockId]:
    hash_ = b""
    header = PartSetHeader()
    for num, _, value in iter_fields(data):
        if num == 1:
            hash_ = _check_hash(value)
        elif num == 2:
            total, psh_hash = 0, b""
            for pnum, _, pvalue in iter_fields(value):
                if pnum == 1:
                    total = pvalue & 0xFFFFFFFF
                elif pnum == 2:
                    psh_hash = _check_hash(pvalue)
            header = PartSetHeader(total, psh_hash)
    block_id = BlockId(hash_, header)
    return None if block_id == BlockId() else block_id


def _signature(value: bytes) -> Optional[bytes]:
    if not value:
        return None
    if len(value) != SIGNATURE_SIZE:
        raise _invalid(f"invalid signature length: {len(value)}")
    return value


def _check_height_round(height: int, round_: int) -> None:
    if height < 0:
        raise _invalid(f"negative height: {height}")
    if round_ < 0:
        raise _invalid(f"negative round: {round_}")


def decode_proposal(data: bytes) -> Proposal:
    """Decode and validate a protobuf `Proposal` message."""
    msg_type, height, round_, pol_round = 0, 0, 0, 0
    block_id = timestamp = signature = None
    try:
        for num, _, value in iter_fields(data):
            if num == 1:
                msg_type = to_signed32(value)
            elif num == 2:
                height = to_signed64(value)
            elif num == 3:
                round_ = to_signed32(value)
            elif num == 4:
                pol_round = to_signed32(value)
            elif num == 5:
                block_id = _decode_block_id(value)
            elif num == 6:
                timestamp = _decode_timestamp(value)
            elif num == 7:
                signature = _signature(value)
    except DecodeError as exc:
        raise ErrorKind.PROTOCOL_ERROR.error(exc) from exc
    if msg_type != SignedMsgType.PROPOSAL:
        raise _invalid(f"invalid proposal message type: {msg_type}")
    _check_height_round(height, round_)
    if pol_round < -1:
        raise _invalid(f"invalid POL round: {pol_round}")
    return Proposal(
        height=height,
        round=round_,
        pol_round=None if pol_round == -1 else pol_round,
        block_id=block_id,
        timestamp=timestamp,
        signature=signature,
    )


def decode_vote(data: bytes) -> Vote:
    """Decode and validate a protobuf `Vote` message."""
    msg_type, height, round_, index = 0, 0, 0, 0
    block_id = timestamp = signature = ext_sig = None
    address = extension = b""
    try:
        for num, _, value in iter_fields(data):
            if num == 1:
                msg_type = to_signed32(value)
            elif num == 2:
                height = to_signed64(value)
            elif num == 3:
                round_ = to_signed32(value)
            elif num == 4:
                block_id = _decode_block_id(value)
            elif num == 5:
                timestamp = _decode_timestamp(value)
            elif num == 6:
                address = value
            elif num == 7:
                index = to_signed32(value)
            elif num == 8:
                signature = _signature(value)
            elif num == 9:
                extension = value
            elif num == 10:
                ext_sig = _signature(value)
    except DecodeError as exc:
        raise ErrorKind.PROTOCOL_ERROR.error(exc) from exc
    try:
        vote_type = VoteType(msg_type)
    except ValueError:
        raise _invalid(f"invalid vote type: {msg_type}") from None
    _check_height_round(height, round_)
    if len(address) != ADDRESS_SIZE:
        raise _invalid(f"invalid validator address length: {len(address)}")
    if index < 0:
        raise _invalid(f"negative validator index: {index}")
    return Vote(
        vote_type=vote_type,
        height=height,
        round=round_,
        block_id=block_id,
        timestamp=timestamp,
        validator_address=address,
        validator_index=index,
        signature=signature,
        extension=extension,
        extension_signature=ext_sig,
    )


def _opt_encode(value) -> Optional[bytes]:
    return None if value is None else value.encode()


def encode_proposal(proposal: Proposal) -> bytes:
    """Encode a proposal as a protobuf `Proposal` message."""
    return (
        MessageWriter()
        .varint(1, SignedMsgType.PROPOSAL)
        .varint(2, proposal.height)
        .varint(3, proposal.round)
        .varint(4, -1 if proposal.pol_round is None else proposal.pol_round)
        .message(5, _opt_encode(proposal.block_id))
        .message(6, _opt_encode(proposal.timestamp))
        .bytes_field(7, proposal.signature or b"")
        .to_bytes()
    )


def encode_vote(vote: Vote) -> bytes:
    """Encode a vote as a protobuf `Vote` message."""
    return (
        MessageWriter()
        .varint(1, vote.vote_type)
        .varint(2, vote.height)
        .varint(3, vote.round)
        .message(4, _opt_encode(vote.block_id))
        .message(5, _opt_encode(vote.timestamp))
        .bytes_field(6, vote.validator_address)
        .varint(7, vote.validator_index)
        .bytes_field(8, vote.signature or b"")
        .bytes_field(9, vote.extension)
        .bytes_field(10, vote.extension_signature or b"")
        .to_bytes()
    )


def _sig_bytes(signature: Union[Signature, bytes]) -> bytes:
    return signature.to_bytes() if isinstance(signature, Signature) else bytes(signature)


@dataclass
class SignableMsg:
    """A proposal or vote awaiting signature."""

    message: Union[Proposal, Vote]

    def msg_type(self) -> SignedMsgType:
        if isinstance(self.message, Proposal):
            return SignedMsgType.PROPOSAL
        return SignedMsgType(int(self.message.vote_type))

    def height(self) -> int:
        return self.message.height

    def canonical_bytes(self, chain_id: str) -> bytes:
        """Length-prefixed canonical encoding over which a signature is computed."""
        msg = self.message
        if isinstance(msg, Proposal):
            payload = (
                MessageWriter()
                .varint(1, SignedMsgType.PROPOSAL)
                .sfixed64(2, msg.height)
                .sfixed64(3, msg.round)
                .varint(4, -1 if msg.pol_round is None else msg.pol_round)
                .message(5, _opt_encode(msg.block_id))
                .message(6, _opt_encode(msg.timestamp))
                .string(7, chain_id)
                .to_bytes()
            )
        else:
            payload = (
                MessageWriter()
                .varint(1, msg.vote_type)
                .sfixed64(2, msg.height)
                .sfixed64(3, msg.round)
                .message(4, _opt_encode(msg.block_id))
                .message(5, _opt_encode(msg.timestamp))
                .string(6, chain_id)
                .to_bytes()
            )
        return encode_length_delimited(payload)

    def extension_bytes(self, chain_id: str) -> Optional[bytes]:
        """Canonical vote extension bytes, only for precommits for a non-nil block."""
        msg = self.message
        if not isinstance(msg, Vote):
            return None
        if msg.vote_type is not VoteType.PRECOMMIT or msg.block_id is None:
            return None
        payload = (
            MessageWriter()
            .bytes_field(1, msg.extension)
            .sfixed64(2, msg.height)
            .sfixed64(3, msg.round)
            .string(4, chain_id)
            .to_bytes()
        )
        return encode_length_delimited(payload)

    def consensus_state(self) -> ConsensusState:
        msg = self.message
        if isinstance(msg, Proposal):
            step = 0
        else:
            step = 1 if msg.vote_type is VoteType.PREVOTE else 2
        return ConsensusState(msg.height, msg.round, step, msg.block_id)

    def add_consensus_signature(self, signature: Union[Signature, bytes]) -> None:
        self.message.signature = _sig_bytes(signature)

    def add_extension_signature(self, signature: Union[Signature, bytes]) -> None:
        if not isinstance(self.message, Vote):
            raise ErrorKind.TENDERMINT_ERROR.error("invalid message type")
        self.message.extension_signature = _sig_bytes(signature)