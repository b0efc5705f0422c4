"""
Test fixtures for the daemon client.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from typing import Any

import pytest


def _varint(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    return b"\xfd" + n.to_bytes(2, "little")


@pytest.fixture
def psbt_bytes() -> Callable[..., bytes]:
    """Build a one-input one-output BIP174 PSBT."""

    def build(
        prev_txid: str = "11" * 32,
        vout: int = 0,
        value: int = 90_000,
        signatures: int = 0,
    ) -> bytes:
        script = b"\x00\x14" + b"\x22" * 20
        unsigned = (
            (2).to_bytes(4, "little")
            + _varint(1)
            + bytes.fromhex(prev_txid)[::-1]
            + vout.to_bytes(4, "little")
            + b"\x00"
            + b"\xff\xff\xff\xff"
            + _varint(1)
            + value.to_bytes(8, "little")
            + _varint(len(script))
            + script
            + (0).to_bytes(4, "little")
        )
        global_map = _varint(1) + b"\x00" + _varint(len(unsigned)) + unsigned + b"\x00"
        input_map = b""
        for i in range(signatures):
            key = b"\x02" + b"\x03" + bytes([i + 1]) * 32
            sig = b"\x30" + bytes([i + 1]) * 70
            input_map += _varint(len(key)) + key + _varint(len(sig)) + sig
        input_map += b"\x00"
        output_map = b"\x00"
        return b"psbt\xff" + global_map + input_map + output_map

    return build


@pytest.fixture
def psbt_b64(psbt_bytes: Callable[..., bytes]) -> Callable[..., str]:
    def build(**kwargs: Any) -> str:
        return base64.b64encode(psbt_bytes(**kwargs)).decode()

    return build


@pytest.fixture
def sample_vault_data() -> dict[str, Any]:
    return {
        "amount": 500_000,
        "status": "funded",
        "txid": "ab" * 32,
        "vout": 1,
        "address": "bcrt1qxyz",
        "derivation_index": 3,
        "received_at": 1_600_000_000,
        "updated_at": 1_600_000_100,
    }
