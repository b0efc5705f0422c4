"""
Data models for the vault daemon RPC, using Pydantic for validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from revaultd_client.psbt import Psbt, PsbtDecodeError


class VaultStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    FUNDED = "funded"
    SECURING = "securing"
    SECURED = "secured"
    ACTIVATING = "activating"
    ACTIVE = "active"
    UNVAULTING = "unvaulting"
    UNVAULTED = "unvaulted"
    CANCELING = "canceling"
    CANCELED = "canceled"
    EMERGENCY_VAULTING = "emergencyvaulting"
    EMERGENCY_VAULTED = "emergencyvaulted"
    SPENDING = "spending"
    SPENT = "spent"
    SPENDABLE = "spendable"


# Vaults that still hold funds or are in motion
CURRENT_STATUSES: tuple[VaultStatus, ...] = tuple(
    s
    for s in VaultStatus
    if s not in (VaultStatus.CANCELED, VaultStatus.EMERGENCY_VAULTED, VaultStatus.SPENT)
)
ACTIVE_STATUSES = (VaultStatus.ACTIVE, VaultStatus.UNVAULTING, VaultStatus.UNVAULTED)
INACTIVE_STATUSES = (VaultStatus.SECURED, VaultStatus.FUNDED, VaultStatus.UNCONFIRMED)
MOVING_STATUSES = (
    VaultStatus.CANCELING,
    VaultStatus.SPENDING,
    VaultStatus.UNVAULTING,
    VaultStatus.UNVAULTED,
)
DELEGATION_STATUSES = (
    VaultStatus.FUNDED,
    VaultStatus.SECURING,
    VaultStatus.SECURED,
    VaultStatus.ACTIVATING,
    VaultStatus.ACTIVE,
)
ACKNOWLEDGEMENT_STATUSES = (VaultStatus.SECURING, VaultStatus.FUNDED)


class TransactionKind(str, Enum):
    UNVAULT = "unvault"
    EMERGENCY = "emergency"
    EMERGENCY_UNVAULT = "emergency_unvault"
    CANCEL = "cancel"
    SPEND = "spend"


def _parse_psbt(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return Psbt.from_base64(value)
        except PsbtDecodeError as e:
            raise ValueError(str(e)) from e
    return value


class Vault(BaseModel):
    amount: int = Field(..., ge=0)
    status: VaultStatus
    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0)
    address: str = ""
    derivation_index: int = Field(default=0, ge=0)
    received_at: int = Field(default=0, ge=0)
    updated_at: int = Field(default=0, ge=0)

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


class BroadcastedTransaction(BaseModel):
    blockheight: int | None = None
    hex: str
    received_at: int = 0


class VaultTransactions(BaseModel):
    """Transactions of a vault seen on chain or in the mempool."""

    vault_outpoint: str
    deposit: BroadcastedTransaction
    unvault: BroadcastedTransaction | None = None
    cancel: BroadcastedTransaction | None = None
    emergency: BroadcastedTransaction | None = None
    unvault_emergency: BroadcastedTransaction | None = None
    spend: BroadcastedTransaction | None = None

    def iter_transactions(self) -> list[tuple[str, BroadcastedTransaction]]:
        names = ("deposit", "unvault", "cancel", "emergency", "unvault_emergency", "spend")
        return [(name, tx) for name in names if (tx := getattr(self, name)) is not None]


class RevocationTransactions(BaseModel):
    cancel_tx: Psbt
    emergency_tx: Psbt
    emergency_unvault_tx: Psbt

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("cancel_tx", "emergency_tx", "emergency_unvault_tx", mode="before")
    @classmethod
    def decode_psbt(cls, v: Any) -> Any:
        return _parse_psbt(v)


class UnvaultTransaction(BaseModel):
    unvault_tx: Psbt

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("unvault_tx", mode="before")
    @classmethod
    def decode_psbt(cls, v: Any) -> Any:
        return _parse_psbt(v)


class SpendTransaction(BaseModel):
    """A spend transaction freshly built by the daemon."""

    spend_tx: Psbt
    feerate: int = Field(..., ge=0)

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("spend_tx", mode="before")
    @classmethod
    def decode_psbt(cls, v: Any) -> Any:
        return _parse_psbt(v)


class SpendTx(BaseModel):
    """A spend transaction stored by the daemon."""

    deposit_outpoints: list[str] = Field(default_factory=list)
    psbt: Psbt

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("psbt", mode="before")
    @classmethod
    def decode_psbt(cls, v: Any) -> Any:
        return _parse_psbt(v)


class DaemonInfo(BaseModel):
    blockheight: int = Field(..., ge=0)
    network: str = "bitcoin"
    sync: float = 1.0
    version: str = ""
    vaults: int = 0
