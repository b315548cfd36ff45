import io

import pytest

from valkms.errors import ErrorKind, KmsError
from valkms.keys import KeyAlgorithm, KeyRole, PublicKey, TendermintKey
from valkms.privval import (
    BlockId,
    PartSetHeader,
    Proposal,
    SignableMsg,
    Timestamp,
    Vote,
    VoteType,
    decode_proposal,
    decode_vote,
    encode_proposal,
    encode_vote,
)
from valkms.protobuf import (
    MessageWriter,
    decode_length_delimited,
    encode_length_delimited,
    iter_fields,
)
from valkms.rpc import (
    DATA_MAX_SIZE,
    RemoteSignerError,
    Request,
    RequestKind,
    Response,
)

CHAIN_ID = "test_chain_id"


def make_vote(extension=b""):
    return Vote(
        vote_type=VoteType.PRECOMMIT,
        height=500001,
        round=2,
        block_id=BlockId(
            b"some hash" + b"0" * 23,
            PartSetHeader(1000000, b"parts_hash" + b"0" * 22),
        ),
        timestamp=Timestamp(1696413600),
        validator_address=bytes(range(20)),
        validator_index=56789,
        extension=extension,
    )


def make_proposal():
    return Proposal(height=12345, round=1, timestamp=Timestamp(1696413600))


def frame(field, body):
    return encode_length_delimited(MessageWriter().message(field, body).to_bytes())


def vote_request(vote, chain_id=CHAIN_ID):
    body = MessageWriter().message(1, encode_vote(vote)).string(2, chain_id).to_bytes()
    return frame(3, body)


def proposal_request(proposal, chain_id=CHAIN_ID):
    body = (
        MessageWriter().message(1, encode_proposal(proposal)).string(2, chain_id).to_bytes()
    )
    return frame(5, body)


def pubkey_request(chain_id=CHAIN_ID):
    return frame(1, MessageWriter().string(1, chain_id).to_bytes())


def read(data, chain_id=CHAIN_ID):
    return Request.read(io.BytesIO(data), chain_id)


def test_read_sign_vote():
    vote = make_vote()
    request = read(vote_request(vote))
    assert request.kind is RequestKind.SIGN_VOTE
    assert request.message == vote


def test_read_sign_proposal():
    proposal = make_proposal()
    request = read(proposal_request(proposal))
    assert request.kind is RequestKind.SIGN_PROPOSAL
    assert request.message == proposal


def test_read_public_key_request():
    request = read(pubkey_request())
    assert request.kind is RequestKind.SHOW_PUBLIC_KEY
    assert request.message is None


def test_read_ping_ignores_chain_id():
    request = read(frame(7, b""), chain_id="other-chain")
    assert request.kind is RequestKind.PING


def test_read_message_spanning_several_chunks():
    vote = make_vote(extension=b"x" * (3 * DATA_MAX_SIZE))
    data = vote_request(vote)
    assert len(data) > DATA_MAX_SIZE
    request = read(data)
    assert request.message == vote


def test_unexpected_chain_id():
    with pytest.raises(KmsError) as info:
        read(vote_request(make_vote(), chain_id="other-chain"))
    assert info.value.kind is ErrorKind.CHAIN_ID_ERROR
    assert "other-chain" in str(info.value)


def test_unexpected_chain_id_for_public_key():
    with pytest.raises(KmsError) as info:
        read(pubkey_request("other-chain"))
    assert info.value.kind is ErrorKind.CHAIN_ID_ERROR


def test_malformed_chain_id():
    with pytest.raises(KmsError) as info:
        read(pubkey_request("bad chain!"))
    assert info.value.kind is ErrorKind.TENDERMINT_ERROR


def test_truncated_message():
    with pytest.raises(KmsError) as info:
        read(vote_request(make_vote())[:50])
    assert info.value.kind is ErrorKind.PROTOCOL_ERROR
    assert "malformed message packet" in str(info.value)


def test_empty_stream():
    with pytest.raises(KmsError) as info:
        read(b"")
    assert info.value.kind is ErrorKind.PROTOCOL_ERROR


@pytest.mark.parametrize(
    "data",
    [
        frame(8, b""),
        encode_length_delimited(b""),
        frame(3, MessageWriter().string(2, CHAIN_ID).to_bytes()),
    ],
)
def test_invalid_rpc_message(data):
    with pytest.raises(KmsError) as info:
        read(data)
    assert info.value.kind is ErrorKind.PROTOCOL_ERROR
    assert "invalid RPC message" in str(info.value)


def test_into_signable_msg():
    vote = make_vote()
    signable = Request(RequestKind.SIGN_VOTE, vote).into_signable_msg()
    assert signable.message is vote


def test_into_signable_msg_rejects_ping():
    with pytest.raises(KmsError) as info:
        Request(RequestKind.PING).into_signable_msg()
    assert info.value.kind is ErrorKind.INVALID_MESSAGE_ERROR


def test_ping_response_bytes():
    assert Response.ping().encode() == b"\x02\x42\x00"


def test_signed_vote_response_round_trip():
    vote = make_vote()
    vote.signature = bytes(64)
    encoded = Response.from_signable(SignableMsg(vote)).encode()
    fields = list(iter_fields(decode_length_delimited(encoded)))
    assert [num for num, _, _ in fields] == [4]
    inner = list(iter_fields(fields[0][2]))
    assert decode_vote(inner[0][2]) == vote


def test_signed_proposal_response_round_trip():
    proposal = make_proposal()
    encoded = Response.from_signable(SignableMsg(proposal)).encode()
    fields = list(iter_fields(decode_length_delimited(encoded)))
    assert [num for num, _, _ in fields] == [6]
    inner = list(iter_fields(fields[0][2]))
    assert decode_proposal(inner[0][2]) == proposal


def test_error_response_carries_only_the_error():
    error = RemoteSignerError(2, "double signing requested at height: 500001")
    response = Response.error(SignableMsg(make_vote()), error)
    assert response.vote is None
    assert response.signer_error == error
    (outer,) = list(iter_fields(decode_length_delimited(response.encode())))
    inner = list(iter_fields(outer[2]))
    assert [value for _, _, value in inner] == [error.encode()]


def test_error_response_for_proposal_differs_from_vote():
    error = RemoteSignerError(2, "double signing requested at height: 12345")
    for_proposal = Response.error(SignableMsg(make_proposal()), error).encode()
    for_vote = Response.error(SignableMsg(make_vote()), error).encode()
    assert for_proposal != for_vote
    assert error.encode() in for_proposal


def test_remote_signer_error_encoding():
    description = "double signing requested at height: 7"
    values = [value for _, _, value in iter_fields(RemoteSignerError(2, description).encode())]
    assert values == [2, description.encode()]


def test_public_key_response_contains_key():
    public_key = PublicKey(KeyAlgorithm.ED25519, bytes(range(32)))
    response = Response.public_key(TendermintKey(KeyRole.CONSENSUS, public_key))
    assert response.pub_key == public_key
    (outer,) = list(iter_fields(decode_length_delimited(response.encode())))
    (key_msg,) = list(iter_fields(outer[2]))
    (key_field,) = list(iter_fields(key_msg[2]))
    assert key_field[2] == public_key.data


def test_public_key_response_distinguishes_algorithms():
    ed = PublicKey(KeyAlgorithm.ED25519, bytes(range(32)))
    secp = PublicKey(KeyAlgorithm.SECP256K1, b"\x02" + bytes(range(32)))
    ed_field = list(iter_fields(decode_length_delimited(Response.public_key(ed).encode())))
    secp_field = list(iter_fields(decode_length_delimited(Response.public_key(secp).encode())))
    ed_key = list(iter_fields(list(iter_fields(ed_field[0][2]))[0][2]))[0]
    secp_key = list(iter_fields(list(iter_fields(secp_field[0][2]))[0][2]))[0]
    assert ed_key[0] != secp_key[0]
    assert secp_key[2] == secp.data