"""
Vault daemon interface.

Every coordinator talks to the daemon through this interface only, so tests
and alternative transports can stand in for the JSON-RPC client.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from revaultd_client.models import (
    DaemonInfo,
    RevocationTransactions,
    SpendTransaction,
    SpendTx,
    Vault,
    VaultStatus,
    VaultTransactions,
)
from revaultd_client.psbt import Psbt


class DaemonError(Exception):
    """A daemon call failed: transport error, RPC error or malformed reply."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is not None:
            return f"{self.message} (code {self.code})"
        return self.message


class DaemonBackend(ABC):
    """Async request/response surface of the vault daemon."""

    @abstractmethod
    async def get_info(self) -> DaemonInfo:
        """Get daemon information, including the current block height"""

    async def get_block_height(self) -> int:
        info = await self.get_info()
        return info.blockheight

    @abstractmethod
    async def list_vaults(
        self, statuses: Sequence[VaultStatus] | None = None, outpoints: Sequence[str] | None = None
    ) -> list[Vault]:
        """List vaults, optionally restricted to some statuses or outpoints"""

    @abstractmethod
    async def get_onchain_transactions(self, outpoint: str) -> VaultTransactions:
        """Get the broadcasted transactions of a vault"""

    @abstractmethod
    async def get_unvault_transaction(self, outpoint: str) -> Psbt:
        """Get the unsigned unvault transaction of a vault"""

    @abstractmethod
    async def get_revocation_transactions(self, outpoint: str) -> RevocationTransactions:
        """Get the unsigned emergency, emergency-unvault and cancel transactions"""

    @abstractmethod
    async def set_unvault_transaction(self, outpoint: str, signed: Psbt) -> None:
        """Share a signed unvault transaction"""

    @abstractmethod
    async def set_revocation_transactions(
        self,
        outpoint: str,
        emergency: Psbt,
        emergency_unvault: Psbt,
        cancel: Psbt,
    ) -> None:
        """Share the three signed revocation transactions in one call"""

    @abstractmethod
    async def get_spend_transaction(
        self, outpoints: Sequence[str], outputs: dict[str, int], feerate: int
    ) -> SpendTransaction:
        """Build a spend transaction for the given vaults and recipients"""

    @abstractmethod
    async def update_spend_transaction(self, psbt: Psbt) -> None:
        """Store or update a spend transaction"""

    @abstractmethod
    async def list_spend_transactions(self) -> list[SpendTx]:
        """List the spend transactions known to the daemon"""

    async def close(self) -> None:
        """Close daemon connection"""
        pass
