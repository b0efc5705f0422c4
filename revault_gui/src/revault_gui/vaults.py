"""
Vault set controller.

Holds the vaults of the last daemon snapshot, the status filter used to fetch
them and the currently selected vault.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loguru import logger
from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import CURRENT_STATUSES, MOVING_STATUSES, Vault, VaultStatus

from revault_gui.balance import manager_balance, stakeholder_balance
from revault_gui.vault import VaultLifecycle


@dataclass(frozen=True)
class StatusChange:
    """Status of a vault between two snapshots, None when absent from one of them."""

    outpoint: str
    previous: VaultStatus | None
    current: VaultStatus | None


class VaultSetController:
    def __init__(
        self,
        daemon: DaemonBackend,
        status_filter: Sequence[VaultStatus] = CURRENT_STATUSES,
    ):
        self.daemon = daemon
        self.status_filter: tuple[VaultStatus, ...] = tuple(status_filter)
        self.vaults: list[Vault] = []
        self.blockheight = 0
        self.loading = False
        self.warning: DaemonError | None = None
        self.selected: VaultLifecycle | None = None
        self._requests = 0

    @property
    def balance(self) -> tuple[int, int]:
        """(active, inactive) amounts of the held vaults."""
        return manager_balance(self.vaults)

    @property
    def balance_by_status(self) -> dict[VaultStatus, tuple[int, int]]:
        return stakeholder_balance(self.vaults)

    def find(self, outpoint: str) -> Vault | None:
        return next((v for v in self.vaults if v.outpoint == outpoint), None)

    def with_status(self, statuses: Sequence[VaultStatus]) -> list[Vault]:
        return [v for v in self.vaults if v.status in statuses]

    @property
    def moving_vaults(self) -> list[Vault]:
        """Vaults being canceled, unvaulted or spent, shown to stakeholders."""
        return self.with_status(MOVING_STATUSES)

    async def poll(self) -> list[StatusChange]:
        """Fetch the block height and a fresh snapshot for the current filter."""
        self.warning = None
        try:
            self.blockheight = await self.daemon.get_block_height()
        except DaemonError as e:
            logger.warning(f"Failed to fetch block height: {e}")
            self.warning = e
        return await self._fetch_vaults()

    async def apply_filter(self, statuses: Sequence[VaultStatus]) -> list[StatusChange]:
        """Fetch the vaults of the given statuses from the daemon."""
        self.status_filter = tuple(statuses)
        self.warning = None
        return await self._fetch_vaults()

    async def run(
        self,
        interval: float,
        on_changes: Callable[[list[StatusChange]], None] | None = None,
    ) -> None:
        """Poll the daemon every `interval` seconds until cancelled."""
        while True:
            changes = await self.poll()
            if changes and on_changes is not None:
                on_changes(changes)
            await asyncio.sleep(interval)

    def apply_snapshot(self, vaults: list[Vault]) -> list[StatusChange]:
        """
        Replace the held vaults with a daemon snapshot.

        Returns the status changes since the previous snapshot. The selected
        vault is refreshed from the snapshot but is kept even if the snapshot
        no longer lists it.
        """
        previous = {v.outpoint: v.status for v in self.vaults}
        current = {v.outpoint: v.status for v in vaults}
        changes = [
            StatusChange(outpoint, previous.get(outpoint), status)
            for outpoint, status in current.items()
            if previous.get(outpoint) != status
        ]
        changes.extend(
            StatusChange(outpoint, status, None)
            for outpoint, status in previous.items()
            if outpoint not in current
        )

        self.vaults = vaults
        if self.selected is not None and (vault := self.find(self.selected.outpoint)):
            self.selected.merge(vault)

        for change in changes:
            logger.debug(f"Vault {change.outpoint}: {change.previous} -> {change.current}")
        return changes

    async def select_vault(self, outpoint: str) -> VaultLifecycle | None:
        """
        Toggle the selection of a vault.

        Selecting the selected vault again returns to the vault list.
        """
        if self.selected is not None and self.selected.outpoint == outpoint:
            self.deselect()
            return None

        lifecycle = self._build_lifecycle(outpoint)
        if lifecycle is None:
            return None
        await lifecycle.load()
        return lifecycle

    async def delegate(self, outpoint: str) -> VaultLifecycle | None:
        lifecycle = self._lifecycle_for(outpoint)
        if lifecycle is not None:
            await lifecycle.request_delegation(outpoint)
        return lifecycle

    async def acknowledge(self, outpoint: str) -> VaultLifecycle | None:
        lifecycle = self._lifecycle_for(outpoint)
        if lifecycle is not None:
            await lifecycle.request_acknowledgement(outpoint)
        return lifecycle

    def deselect(self) -> None:
        if self.selected is not None:
            self.selected.close()
            self.selected = None

    def _lifecycle_for(self, outpoint: str) -> VaultLifecycle | None:
        if self.selected is not None and self.selected.outpoint == outpoint:
            return self.selected
        return self._build_lifecycle(outpoint)

    def _build_lifecycle(self, outpoint: str) -> VaultLifecycle | None:
        vault = self.find(outpoint)
        if vault is None:
            logger.debug(f"Unknown vault {outpoint}")
            return None
        self.deselect()
        self.selected = VaultLifecycle(self.daemon, vault)
        return self.selected

    async def _fetch_vaults(self) -> list[StatusChange]:
        self._requests += 1
        request = self._requests
        statuses = self.status_filter
        self.loading = True
        try:
            vaults = await self.daemon.list_vaults(statuses)
        except DaemonError as e:
            if request == self._requests:
                logger.warning(f"Failed to list vaults: {e}")
                self.warning = e
                self.loading = False
            return []

        if request != self._requests:
            logger.debug(f"Dropping stale vault list for filter {[s.value for s in statuses]}")
            return []
        self.loading = False
        return self.apply_snapshot(vaults)
