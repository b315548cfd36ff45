# valkms

A Python library with the pieces a remote signer for a Tendermint/CometBFT
validator needs. It reads `privval` requests, produces the canonical bytes
that get signed, handles keys and signatures, and builds the replies.

## Modules

- `valkms.rpc`: `Request.read(conn, expected_chain_id)` reads a
  length-delimited `privval` message from any object with a
  `read(size)` method. It reads in chunks of up to `DATA_MAX_SIZE` (1024)
  bytes. A full chunk that does not yet decode means more data follows. A
  short chunk that does not decode raises a `PROTOCOL_ERROR`.
  - The request kinds are in `RequestKind`: `SIGN_VOTE`, `SIGN_PROPOSAL`,
    `SHOW_PUBLIC_KEY` and `PING`.
  - The chain ID of a non-ping request must be valid and must match the
    expected one. Otherwise `read` raises `CHAIN_ID_ERROR`.
  - `Response` builds replies with `Response.from_signable(msg)`,
    `Response.error(msg, RemoteSignerError(code, description))`,
    `Response.ping()` and `Response.public_key(key)`.
    `Response.encode()` gives the length-prefixed bytes to send.
- `valkms.privval`: covers the `Proposal`, `Vote`, `BlockId`,
  `PartSetHeader` and `Timestamp` data classes.
  - `decode_proposal`, `decode_vote`, `encode_proposal` and `encode_vote`
    convert them to and from protobuf. The decoders validate what they read.
  - `SignableMsg` wraps a proposal or vote. `canonical_bytes(chain_id)`
    returns the length-delimited canonical encoding.
  - `extension_bytes(chain_id)` returns the vote extension bytes, but only
    for a precommit that names a block; otherwise it returns `None`.
  - `consensus_state()` returns a `ConsensusState` with height, round and
    step.
  - `add_consensus_signature` and `add_extension_signature` set the
    signatures on the wrapped message.
  - `SignedMsgType` and `validate_chain_id` are also provided.
- `valkms.protobuf`: the protobuf wire-format helpers used above:
  `MessageWriter`, `encode_varint`, `decode_varint`,
  `encode_length_delimited`, `decode_length_delimited`, `iter_fields` and
  `DecodeError`.
- `valkms.keys`: defines the key and signature types.
  - `PublicKey` is raw key bytes tagged with a `KeyAlgorithm` (Ed25519 or
    secp256k1).
  - `TendermintKey` pairs a public key with a `KeyRole` (account or
    consensus).
  - `Signature` holds 64 bytes.
  - `Ed25519VerifyingKey` can be built from bytes or from a signing key, and
    can verify signatures.
  - `Signer` binds a `SigningProvider`, a public key and a signing callable.
- `valkms.key_utils`: works with Base64 secret key files.
  - `load_base64_secret`, `load_base64_ed25519_key` and
    `load_base64_secp256k1_key` load keys.
  - `write_base64_secret` creates files with mode `0600`.
  - `generate_key` writes 32 random bytes.
- `valkms.keyformat`: serializes a `TendermintKey` in one of three formats.
  - `Bech32Format` encodes account keys as their account id and consensus
    keys in the Amino-prefixed form.
  - `CosmosJsonFormat` produces Cosmos JSON.
  - `HexFormat` produces upper-case hex.
  - `format_from_config` builds a format from a table tagged by `type`:
    `bech32`, `cosmos-json` or `hex`.
- `valkms.ledger`: a client for the Tendermint validator app on a Ledger
  device.
  - `TendermintValidatorApp` queries the version and the public key. It signs
    by sending the message in chunks of 250 bytes, with at most 255 chunks.
  - `Ed25519LedgerTmAppSigner` wraps the app as an Ed25519 signer.
  - Errors are raised as `LedgerError`.
- `valkms.connection`: `UnixConnection` wraps a socket or a binary stream
  with `read`, `write` and `flush`, and closes it when used as a context
  manager.
- `valkms.errors`: most failures are raised as `KmsError`. Its `kind`
  attribute is an `ErrorKind`, for example `CHAIN_ID_ERROR`,
  `PROTOCOL_ERROR`, `INVALID_KEY` or `SIGNING_ERROR`. `ErrorKind.X.error(msg)`
  creates one.

## Installation

```
pip install valkms
```

## Example: signing a vote

```python
from valkms.key_utils import generate_key, load_base64_ed25519_key
from valkms.keys import KeyAlgorithm, Signature
from valkms.privval import SignableMsg, Timestamp, Vote, VoteType, validate_chain_id

chain_id = validate_chain_id("test_chain_id")

generate_key("consensus.key")
signing_key = load_base64_ed25519_key("consensus.key")

vote = Vote(
    vote_type=VoteType.PREVOTE,
    height=500001,
    round=2,
    block_id=None,
    timestamp=Timestamp(1696413600),
    validator_address=bytes(20),
    validator_index=0,
)
msg = SignableMsg(vote)
raw = signing_key.sign(msg.canonical_bytes(chain_id))
msg.add_consensus_signature(Signature(KeyAlgorithm.ED25519, raw))
```

## Example: answering a request

```python
import socket

from valkms.connection import UnixConnection
from valkms.keys import (
    Ed25519VerifyingKey, KeyRole, Signer, SigningProvider, TendermintKey,
)
from valkms.rpc import Request, RequestKind, Response

public_key = TendermintKey(
    KeyRole.CONSENSUS,
    Ed25519VerifyingKey.from_signing_key(signing_key).to_public_key(),
)
signer = Signer(SigningProvider.SOFT_SIGN, public_key, signing_key.sign)

sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
sock.connect("/tmp/privval.sock")
with UnixConnection(sock) as conn:
    request = Request.read(conn, chain_id)
    if request.kind is RequestKind.PING:
        reply = Response.ping()
    elif request.kind is RequestKind.SHOW_PUBLIC_KEY:
        reply = Response.public_key(public_key)
    else:
        signable = request.into_signable_msg()
        signable.add_consensus_signature(signer.sign(signable.canonical_bytes(chain_id)))
        reply = Response.from_signable(signable)
    conn.write(reply.encode())
```

## Ledger transport

`TendermintValidatorApp` does not open the device itself. Give it any object
with an `exchange(command)` method that takes an `ApduCommand` and returns an
`ApduAnswer`. `ApduCommand.to_bytes()` gives the header and data bytes to send
over USB or HID.

## What this package does not do

This is a library, not a running signing service. It has:

- no command-line program;
- no configuration file loading;
- no request loop or session handling;
- no TCP "secret connection" handshake;
- no stored chain state, and so no double-sign or maximum-height checks. It
  derives the `ConsensusState` that such checks would use.

It also has no YubiHSM or Fortanix DSM backends. `SigningProvider` names them,
but signing for any provider is done by the callable you give to `Signer`.

## Running the tests

```
pip install -e .[test]
pytest
```