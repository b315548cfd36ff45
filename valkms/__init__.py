"""Privval RPC messages, canonical signing bytes, keys and key formats for Tendermint validators."""

__version__ = "0.14.0"