"""
Test fixtures for the vault client state machines.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from revaultd_client.backend import DaemonBackend
from revaultd_client.models import RevocationTransactions, Vault, VaultStatus
from revaultd_client.psbt import Psbt


def _varint(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    return b"\xfd" + n.to_bytes(2, "little")


def build_psbt(prev_txid: str, vout: int = 0, value: int = 90_000, signatures: int = 0) -> Psbt:
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
    data = b"psbt\xff" + _varint(1) + b"\x00" + _varint(len(unsigned)) + unsigned + b"\x00"
    for i in range(signatures):
        key = b"\x02" + b"\x03" + bytes([i + 1]) * 32
        sig = b"\x30" + bytes([i + 1]) * 70
        data += _varint(len(key)) + key + _varint(len(sig)) + sig
    data += b"\x00" + b"\x00"
    return Psbt.from_bytes(data)


@pytest.fixture
def make_psbt() -> Callable[..., Psbt]:
    """Build a one-input PSBT spending `prev_txid`, with `signatures` partial signatures."""
    return build_psbt


@pytest.fixture
def make_vault() -> Callable[..., Vault]:
    def build(
        status: VaultStatus = VaultStatus.FUNDED, amount: int = 100_000, index: int = 1
    ) -> Vault:
        return Vault(
            amount=amount,
            status=status,
            txid=f"{index:064x}",
            vout=0,
            address=f"bcrt1qvault{index}",
            derivation_index=index,
        )

    return build


@pytest.fixture
def revocation_txs() -> RevocationTransactions:
    return RevocationTransactions(
        emergency_tx=build_psbt("e1" * 32),
        emergency_unvault_tx=build_psbt("e2" * 32),
        cancel_tx=build_psbt("ca" * 32),
    )


@pytest.fixture
def daemon() -> MagicMock:
    """Daemon backend whose calls all succeed with empty results."""
    mock = MagicMock(spec=DaemonBackend)
    mock.get_info = AsyncMock()
    mock.get_block_height = AsyncMock(return_value=100)
    mock.list_vaults = AsyncMock(return_value=[])
    mock.get_onchain_transactions = AsyncMock()
    mock.get_unvault_transaction = AsyncMock()
    mock.get_revocation_transactions = AsyncMock()
    mock.set_unvault_transaction = AsyncMock(return_value=None)
    mock.set_revocation_transactions = AsyncMock(return_value=None)
    mock.get_spend_transaction = AsyncMock()
    mock.update_spend_transaction = AsyncMock(return_value=None)
    mock.list_spend_transactions = AsyncMock(return_value=[])
    mock.close = AsyncMock()
    return mock


class Gate:
    """Holds a mocked daemon call until released, to interleave responses."""

    def __init__(self, result: Any = None):
        self.result = result
        self.event = asyncio.Event()
        self.entered = 0

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        self.entered += 1
        await self.event.wait()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    def release(self) -> None:
        self.event.set()


@pytest.fixture
def gate() -> type[Gate]:
    return Gate
