"""
Lifecycle of a selected vault.

A selected vault shows one section at a time: nothing yet, its onchain
transactions, the delegation (unvault signature) or the acknowledgement
(revocation chain signatures). Entering a section tears down the previous
one, and daemon responses that arrive for a section or a vault that is no
longer displayed are dropped.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import TransactionKind, Vault, VaultTransactions
from revaultd_client.psbt import Psbt

from revault_gui.revocation import RevocationChainCoordinator
from revault_gui.sign import SignatureCollector, SingleSignatureCoordinator


class DelegationCoordinator(SingleSignatureCoordinator):
    """Signs the unvault transaction of a vault and shares it with the daemon."""

    def __init__(self, daemon: DaemonBackend, outpoint: str, unvault_tx: Psbt):
        super().__init__(unvault_tx, TransactionKind.UNVAULT)
        self.daemon = daemon
        self.outpoint = outpoint

    async def _send(self, signed: Psbt) -> None:
        await self.daemon.set_unvault_transaction(self.outpoint, signed)


@dataclass
class Unloaded:
    pass


@dataclass
class OnchainTransactions:
    txs: VaultTransactions


@dataclass
class Delegate:
    coordinator: DelegationCoordinator


@dataclass
class Acknowledge:
    coordinator: RevocationChainCoordinator


VaultSection = Unloaded | OnchainTransactions | Delegate | Acknowledge


@dataclass
class _Request:
    """Marks a daemon request so its response can be matched to the current state."""

    number: int
    section: Any = field(repr=False)


class VaultLifecycle:
    """
    State of one selected vault.

    The vault is a copy of the one held by the vault set; editing it here does
    not touch the set. Signing actions are routed to the active section's
    coordinator and ignored when no signing section is active.
    """

    def __init__(self, daemon: DaemonBackend, vault: Vault):
        self.daemon = daemon
        self.vault = vault.model_copy(deep=True)
        self.section: VaultSection = Unloaded()
        self.warning: DaemonError | None = None
        self.closed = False
        self._requests = 0

    @property
    def outpoint(self) -> str:
        return self.vault.outpoint

    @property
    def coordinator(self) -> DelegationCoordinator | RevocationChainCoordinator | None:
        if isinstance(self.section, (Delegate, Acknowledge)):
            return self.section.coordinator
        return None

    @property
    def signer(self) -> SignatureCollector | None:
        coordinator = self.coordinator
        return coordinator.signer if coordinator is not None else None

    def merge(self, vault: Vault) -> None:
        """Take the vault as reported by a fresh daemon snapshot."""
        if vault.outpoint == self.outpoint:
            self.vault = vault.model_copy(deep=True)

    async def load(self) -> None:
        """Fetch the onchain transactions of the vault."""
        txs = await self._fetch(self.daemon.get_onchain_transactions)
        if txs is not None:
            self._enter(OnchainTransactions(txs))

    async def request_delegation(self, outpoint: str) -> None:
        if outpoint != self.outpoint:
            logger.debug(f"Ignoring delegation request for {outpoint}, selected {self.outpoint}")
            return
        unvault_tx = await self._fetch(self.daemon.get_unvault_transaction)
        if unvault_tx is not None:
            self._enter(Delegate(DelegationCoordinator(self.daemon, self.outpoint, unvault_tx)))

    async def request_acknowledgement(self, outpoint: str) -> None:
        if outpoint != self.outpoint:
            logger.debug(
                f"Ignoring acknowledgement request for {outpoint}, selected {self.outpoint}"
            )
            return
        txs = await self._fetch(self.daemon.get_revocation_transactions)
        if txs is not None:
            self._enter(Acknowledge(RevocationChainCoordinator(self.daemon, self.outpoint, txs)))

    def change_sign_method(self) -> None:
        if (coordinator := self.coordinator) is not None:
            coordinator.change_method()

    def edit_psbt(self, text: str) -> None:
        if (coordinator := self.coordinator) is not None:
            coordinator.edit(text)

    async def submit_signature(self, text: str | None = None) -> bool:
        coordinator = self.coordinator
        if coordinator is None or self.closed:
            return False
        return await coordinator.submit(text)

    async def report_signature(self, signed: Psbt) -> bool:
        coordinator = self.coordinator
        if coordinator is None or self.closed:
            return False
        return await coordinator.report_signed(signed)

    async def retry(self) -> bool:
        coordinator = self.coordinator
        if coordinator is None or self.closed:
            return False
        return await coordinator.retry()

    def close(self) -> None:
        """Tear down the lifecycle, pending responses are dropped."""
        self.closed = True
        self._teardown()
        self.section = Unloaded()

    def _enter(self, section: VaultSection) -> None:
        self._teardown()
        self.section = section
        self.warning = None
        logger.debug(f"Vault {self.outpoint} entered {type(section).__name__} section")

    def _teardown(self) -> None:
        if (coordinator := self.coordinator) is not None:
            coordinator.discard()

    async def _fetch(self, call: Callable[[str], Awaitable[Any]]) -> Any:
        """
        Run a daemon fetch for this vault.

        Returns None when the call failed (the error is kept as warning) or
        when a later request or a section change made the response stale.
        """
        self._requests += 1
        request = _Request(self._requests, self.section)
        try:
            result = await call(self.outpoint)
        except DaemonError as e:
            if self._is_current(request):
                logger.warning(f"Daemon request for vault {self.outpoint} failed: {e}")
                self.warning = e
            return None

        if not self._is_current(request):
            logger.debug(f"Dropping stale daemon response for vault {self.outpoint}")
            return None
        return result

    def _is_current(self, request: _Request) -> bool:
        return (
            not self.closed
            and request.number == self._requests
            and request.section is self.section
        )
