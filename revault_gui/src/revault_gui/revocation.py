"""
Revocation chain signing.

A vault is only secured once the stakeholder shared signatures for its three
revocation transactions. They are signed one after the other, emergency
first, and shared with the daemon in a single call once all three are signed.
"""

from __future__ import annotations

from loguru import logger
from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import RevocationTransactions, TransactionKind
from revaultd_client.psbt import Psbt

from revault_gui.errors import ChainOrderError, IdentityMismatch
from revault_gui.sign import SignatureCollector, TransactionEnvelope

REVOCATION_ORDER = (
    TransactionKind.EMERGENCY,
    TransactionKind.EMERGENCY_UNVAULT,
    TransactionKind.CANCEL,
)


class RevocationChain:
    """Emergency, emergency-unvault and cancel envelopes, signed strictly in order."""

    def __init__(self, txs: RevocationTransactions):
        self.envelopes: dict[TransactionKind, TransactionEnvelope] = {
            TransactionKind.EMERGENCY: TransactionEnvelope(
                txs.emergency_tx, TransactionKind.EMERGENCY
            ),
            TransactionKind.EMERGENCY_UNVAULT: TransactionEnvelope(
                txs.emergency_unvault_tx, TransactionKind.EMERGENCY_UNVAULT
            ),
            TransactionKind.CANCEL: TransactionEnvelope(txs.cancel_tx, TransactionKind.CANCEL),
        }

    def __getitem__(self, kind: TransactionKind) -> TransactionEnvelope:
        return self.envelopes[kind]

    def is_signed(self, kind: TransactionKind) -> bool:
        return self.envelopes[kind].is_signed

    @property
    def complete(self) -> bool:
        return all(envelope.is_signed for envelope in self.envelopes.values())

    @property
    def current(self) -> TransactionKind:
        """The member awaiting signature, or cancel once the chain is complete."""
        for kind in REVOCATION_ORDER:
            if not self.is_signed(kind):
                return kind
        return TransactionKind.CANCEL

    def mark_signed(self, kind: TransactionKind, signed: Psbt) -> None:
        """
        Store the signed version of a chain member.

        Raises:
            ChainOrderError: If `kind` is not the member awaiting signature
            IdentityMismatch: If `signed` is not the member's transaction
        """
        if kind not in REVOCATION_ORDER or kind != self.current:
            raise ChainOrderError(
                f"cannot sign {kind.value} transaction while {self.current.value} is unsigned"
            )
        self.envelopes[kind] = self.envelopes[kind].with_signed(signed)

    def signed_transactions(self) -> tuple[Psbt, Psbt, Psbt]:
        """Signed (emergency, emergency_unvault, cancel), once the chain is complete."""
        signed = [self.envelopes[kind].signed for kind in REVOCATION_ORDER]
        if any(psbt is None for psbt in signed):
            raise ChainOrderError("revocation chain is not fully signed")
        emergency, emergency_unvault, cancel = signed
        return emergency, emergency_unvault, cancel  # type: ignore[return-value]


class RevocationChainCoordinator:
    """
    Collects the revocation chain signatures of one vault.

    The active collector starts on the emergency transaction and is replaced
    by a fresh collector for the next member each time one gets signed.
    """

    def __init__(self, daemon: DaemonBackend, outpoint: str, txs: RevocationTransactions):
        self.daemon = daemon
        self.outpoint = outpoint
        self.chain = RevocationChain(txs)
        self.signer = SignatureCollector(txs.emergency_tx, TransactionKind.EMERGENCY)
        self.collectors: dict[TransactionKind, SignatureCollector] = {
            TransactionKind.EMERGENCY: self.signer
        }
        self.warning: DaemonError | None = None
        self.submitting = False
        self.done = False
        self.discarded = False

    @property
    def step(self) -> TransactionKind:
        return self.signer.kind

    def change_method(self) -> None:
        if not self._locked():
            self.signer.change_method()

    def edit(self, text: str) -> None:
        if not self._locked():
            self.signer.edit(text)

    async def submit(self, text: str | None = None) -> bool:
        """Accept a pasted signed PSBT for the active member."""
        if self._locked():
            return False
        signed = self.signer.submit(text)
        if signed is None:
            return False
        return await self.on_signed(self.signer.kind, signed)

    async def report_signed(self, signed: Psbt) -> bool:
        if self._locked():
            return False
        if self.signer.report_signed(signed) is None:
            return False
        return await self.on_signed(self.signer.kind, signed)

    async def on_signed(self, kind: TransactionKind, signed: Psbt) -> bool:
        """
        Record a newly signed chain member and move the chain forward.

        Signing the cancel transaction completes the chain and shares all three
        transactions with the daemon. Returns True once the daemon accepted them.
        """
        if self._locked():
            return False
        try:
            self.chain.mark_signed(kind, signed)
        except (ChainOrderError, IdentityMismatch) as e:
            logger.warning(f"Ignoring {kind.value} signature for {self.outpoint}: {e}")
            return False

        if kind == TransactionKind.EMERGENCY:
            self._advance(TransactionKind.EMERGENCY_UNVAULT)
        elif kind == TransactionKind.EMERGENCY_UNVAULT:
            self._advance(TransactionKind.CANCEL)
        else:
            return await self._share()
        return False

    async def retry(self) -> bool:
        """Share the complete chain again after a daemon failure."""
        if self._locked() or not self.chain.complete:
            return False
        return await self._share()

    def discard(self) -> None:
        self.discarded = True

    def _locked(self) -> bool:
        if self.discarded or self.done:
            return True
        if self.submitting:
            logger.debug(f"Ignoring signature for {self.outpoint}: revocation chain in flight")
            return True
        return False

    def _advance(self, kind: TransactionKind) -> None:
        collector = SignatureCollector(self.chain[kind].original, kind)
        self.collectors[kind] = collector
        self.signer = collector
        logger.debug(f"Revocation chain of {self.outpoint} now awaiting {kind.value} signature")

    async def _share(self) -> bool:
        emergency, emergency_unvault, cancel = self.chain.signed_transactions()
        self.submitting = True
        self.warning = None
        try:
            await self.daemon.set_revocation_transactions(
                self.outpoint, emergency, emergency_unvault, cancel
            )
        except DaemonError as e:
            if not self.discarded:
                logger.warning(f"Failed to share revocation transactions of {self.outpoint}: {e}")
                self.warning = e
            return False
        finally:
            self.submitting = False

        if self.discarded:
            logger.debug(f"Dropping response for discarded revocation chain of {self.outpoint}")
            return False
        self.done = True
        for collector in self.collectors.values():
            collector.notify_success()
        logger.info(f"Shared revocation transactions of {self.outpoint}")
        return True
