"""
revaultd_client - Client library for the vault daemon

Provides data models, the PSBT codec and the async JSON-RPC client.
"""

__version__ = "0.1.0"

from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import (
    ACKNOWLEDGEMENT_STATUSES,
    ACTIVE_STATUSES,
    CURRENT_STATUSES,
    DELEGATION_STATUSES,
    INACTIVE_STATUSES,
    MOVING_STATUSES,
    BroadcastedTransaction,
    DaemonInfo,
    RevocationTransactions,
    SpendTransaction,
    SpendTx,
    TransactionKind,
    Vault,
    VaultStatus,
    VaultTransactions,
)
from revaultd_client.psbt import Psbt, PsbtDecodeError, UnsignedTransaction
from revaultd_client.rpc import RevaultDClient

__all__ = [
    "ACKNOWLEDGEMENT_STATUSES",
    "ACTIVE_STATUSES",
    "BroadcastedTransaction",
    "CURRENT_STATUSES",
    "DELEGATION_STATUSES",
    "DaemonBackend",
    "DaemonError",
    "DaemonInfo",
    "INACTIVE_STATUSES",
    "MOVING_STATUSES",
    "Psbt",
    "PsbtDecodeError",
    "RevaultDClient",
    "RevocationTransactions",
    "SpendTransaction",
    "SpendTx",
    "TransactionKind",
    "UnsignedTransaction",
    "Vault",
    "VaultStatus",
    "VaultTransactions",
]
