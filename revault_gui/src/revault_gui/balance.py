"""
Balance aggregation over a vault snapshot.

Pure functions of the vault list, recomputed on every snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from revaultd_client.models import ACTIVE_STATUSES, INACTIVE_STATUSES, Vault, VaultStatus

# Statuses not counted in the per-status stakeholder balance
EXCLUDED_FROM_BALANCE = (VaultStatus.UNCONFIRMED, VaultStatus.SPENT, VaultStatus.SPENDING)


class BalanceBucket(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    NONE = "none"


def bucket_of(status: VaultStatus) -> BalanceBucket:
    """Two-bucket classification, every status falls in exactly one bucket."""
    if status in ACTIVE_STATUSES:
        return BalanceBucket.ACTIVE
    if status in INACTIVE_STATUSES:
        return BalanceBucket.INACTIVE
    return BalanceBucket.NONE


def manager_balance(vaults: Iterable[Vault]) -> tuple[int, int]:
    """Return (active, inactive) amounts in satoshis."""
    active_amount = 0
    inactive_amount = 0
    for vault in vaults:
        bucket = bucket_of(vault.status)
        if bucket == BalanceBucket.ACTIVE:
            active_amount += vault.amount
        elif bucket == BalanceBucket.INACTIVE:
            inactive_amount += vault.amount
    return active_amount, inactive_amount


def active_balance(vaults: Iterable[Vault]) -> int:
    return manager_balance(vaults)[0]


def funded_balance(vaults: Iterable[Vault]) -> int:
    """Amount waiting for the revocation transactions to be signed."""
    return sum(vault.amount for vault in vaults if vault.status == VaultStatus.FUNDED)


def stakeholder_balance(vaults: Iterable[Vault]) -> dict[VaultStatus, tuple[int, int]]:
    """Return status -> (number of vaults, amount), skipping unconfirmed and spent funds."""
    balance: dict[VaultStatus, tuple[int, int]] = {}
    for vault in vaults:
        if vault.status in EXCLUDED_FROM_BALANCE:
            continue
        number, amount = balance.get(vault.status, (0, 0))
        balance[vault.status] = (number + 1, amount + vault.amount)
    return balance
