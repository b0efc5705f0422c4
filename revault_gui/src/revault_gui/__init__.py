"""
revault_gui - Vault client orchestration

Tracks vault status and drives the collection of the signatures needed to
secure, delegate and spend vaults.
"""

__version__ = "0.1.0"

from revault_gui.balance import (
    BalanceBucket,
    bucket_of,
    funded_balance,
    manager_balance,
    stakeholder_balance,
)
from revault_gui.errors import (
    ChainOrderError,
    DaemonError,
    DecodeError,
    EmptySelection,
    IdentityMismatch,
    ValidationError,
    VaultError,
)
from revault_gui.revocation import RevocationChain, RevocationChainCoordinator
from revault_gui.sign import SignatureCollector, SignMethod, TransactionEnvelope
from revault_gui.spend import (
    ManagerSendFlow,
    ManagerSendStep,
    SpendProposalBuilder,
    SpendTransactionImporter,
    SpendTransactionList,
)
from revault_gui.vault import DelegationCoordinator, VaultLifecycle
from revault_gui.vaults import StatusChange, VaultSetController

__all__ = [
    "BalanceBucket",
    "ChainOrderError",
    "DaemonError",
    "DecodeError",
    "DelegationCoordinator",
    "EmptySelection",
    "IdentityMismatch",
    "ManagerSendFlow",
    "ManagerSendStep",
    "RevocationChain",
    "RevocationChainCoordinator",
    "SignMethod",
    "SignatureCollector",
    "SpendProposalBuilder",
    "SpendTransactionImporter",
    "SpendTransactionList",
    "StatusChange",
    "TransactionEnvelope",
    "ValidationError",
    "VaultError",
    "VaultLifecycle",
    "VaultSetController",
    "bucket_of",
    "funded_balance",
    "manager_balance",
    "stakeholder_balance",
]
