"""Chain-specific representations of public keys."""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Union

from Crypto.Hash import RIPEMD160

from valkms.errors import ErrorKind
from valkms.keys import KeyAlgorithm, KeyRole, PublicKey, TendermintKey

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

# Amino prefixes kept for backwards-compatible Bech32 consensus keys.
_AMINO_PREFIXES = {
    KeyAlgorithm.ED25519: bytes([0x16, 0x24, 0xDE, 0x64, 0x20]),
    KeyAlgorithm.SECP256K1: bytes([0xEB, 0x5A, 0xE9, 0x87, 0x21]),
}

_COSMOS_TYPE_URLS = {
    KeyAlgorithm.ED25519: "/cosmos.crypto.ed25519.PubKey",
    KeyAlgorithm.SECP256K1: "/cosmos.crypto.secp256k1.PubKey",
}

ACCOUNT_ID_SIZE = 20


def _polymod(values: Iterable[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _to_five_bit(data: bytes) -> List[int]:
    acc = bits = 0
    out: List[int] = []
    for byte in data:
        acc = (acc << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append((acc >> bits) & 31)
    if bits:
        out.append((acc << (5 - bits)) & 31)
    return out


def bech32_encode(prefix: str, data: bytes) -> str:
    """Encode bytes as Bech32 with the given human-readable prefix."""
    if not prefix or any(not 33 <= ord(c) <= 126 for c in prefix):
        raise ValueError(f"invalid Bech32 prefix: {prefix!r}")
    hrp = prefix.lower()
    words = _to_five_bit(bytes(data))
    polymod = _polymod(_hrp_expand(hrp) + words + [0] * 6) ^ 1
    checksum = [(polymod >> (5 * (5 - i))) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[w] for w in words + checksum)


def account_id(public_key: PublicKey) -> bytes:
    """Derive the 20-byte account identifier of a public key."""
    digest = hashlib.sha256(public_key.data).digest()
    if public_key.algorithm is KeyAlgorithm.SECP256K1:
        return RIPEMD160.new(digest).digest()
    return digest[:ACCOUNT_ID_SIZE]


@dataclass(frozen=True)
class Bech32Format:
    """Bech32 serialization with separate account and consensus prefixes."""

    account_key_prefix: str
    consensus_key_prefix: str

    def serialize(self, public_key: TendermintKey) -> str:
        key = public_key.public_key
        if public_key.role is KeyRole.ACCOUNT:
            return bech32_encode(self.account_key_prefix, account_id(key))
        return bech32_encode(
            self.consensus_key_prefix, _AMINO_PREFIXES[key.algorithm] + key.data
        )


@dataclass(frozen=True)
class CosmosJsonFormat:
    """JSON-encoded Cosmos protobuf representation of keys."""

    def serialize(self, public_key: TendermintKey) -> str:
        key = public_key.public_key
        document = {
            "@type": _COSMOS_TYPE_URLS[key.algorithm],
            "key": base64.b64encode(key.data).decode("ascii"),
        }
        return json.dumps(document, separators=(",", ":"))


@dataclass(frozen=True)
class HexFormat:
    """Upper-case hexadecimal representation of keys."""

    def serialize(self, public_key: TendermintKey) -> str:
        return public_key.public_key.data.hex().upper()


Format = Union[Bech32Format, CosmosJsonFormat, HexFormat]


def format_from_config(config: Mapping[str, object]) -> Format:
    """Build a key format from a configuration table tagged by `type`."""
    kind = config.get("type")
    if kind == "bech32":
        try:
            account = config["account_key_prefix"]
            consensus = config["consensus_key_prefix"]
        except KeyError as exc:
            raise ErrorKind.CONFIG_ERROR.error(f"missing field {exc.args[0]}") from None
        if not isinstance(account, str) or not isinstance(consensus, str):
            raise ErrorKind.CONFIG_ERROR.error("key prefixes must be strings")
        return Bech32Format(account, consensus)
    if kind == "cosmos-json":
        return CosmosJsonFormat()
    if kind == "hex":
        return HexFormat()
    raise ErrorKind.CONFIG_ERROR.error(f"unknown key format type: {kind!r}")