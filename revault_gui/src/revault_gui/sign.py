"""
Signature collection for a single transaction.

The collector never signs anything itself. A signer attached to the machine
reports its result (direct method), or the operator pastes the signed PSBT
exported from an air gapped device (indirect method). Either way the signed
PSBT is only accepted if it is the transaction that was asked to be signed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger
from revaultd_client.backend import DaemonError
from revaultd_client.models import TransactionKind
from revaultd_client.psbt import Psbt, PsbtDecodeError

from revault_gui.errors import DecodeError, IdentityMismatch, VaultError


class SignMethod(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"


class SharingStatus(str, Enum):
    UNSHARED = "unshared"
    SUCCESS = "success"


@dataclass(frozen=True)
class TransactionEnvelope:
    """A transaction awaiting signature, and its signed version once accepted."""

    original: Psbt
    kind: TransactionKind
    signed: Psbt | None = None

    @property
    def txid(self) -> str:
        return self.original.unsigned_txid

    @property
    def is_signed(self) -> bool:
        return self.signed is not None

    def with_signed(self, signed: Psbt) -> TransactionEnvelope:
        """Return a copy holding `signed`, which must target the same transaction."""
        if signed.unsigned_txid != self.original.unsigned_txid:
            raise IdentityMismatch()
        return replace(self, signed=signed)


def decode_signed_psbt(original: Psbt, text: str) -> Psbt:
    """
    Decode a base64 PSBT and check it signs `original`.

    Raises:
        DecodeError: If the text is not a base64 encoded PSBT
        IdentityMismatch: If the PSBT is for another transaction
    """
    try:
        signed = Psbt.from_base64(text)
    except PsbtDecodeError as e:
        logger.debug(f"Rejected PSBT input: {e}")
        raise DecodeError() from e

    if signed.unsigned_txid != original.unsigned_txid:
        raise IdentityMismatch()
    return signed


class SignatureCollector:
    """
    Collects the signed version of one transaction.

    Errors are kept in `warning` and leave `signed` untouched.
    """

    def __init__(self, original: Psbt, kind: TransactionKind):
        self.envelope = TransactionEnvelope(original=original, kind=kind)
        self.method = SignMethod.DIRECT
        self.psbt_input = ""
        self.warning: VaultError | None = None
        self.sharing_status = SharingStatus.UNSHARED

    @property
    def original(self) -> Psbt:
        return self.envelope.original

    @property
    def signed(self) -> Psbt | None:
        return self.envelope.signed

    @property
    def kind(self) -> TransactionKind:
        return self.envelope.kind

    @property
    def is_shared(self) -> bool:
        return self.sharing_status == SharingStatus.SUCCESS

    def change_method(self) -> None:
        """Toggle between direct and indirect signing, dropping any pasted input."""
        if self.method == SignMethod.DIRECT:
            self.method = SignMethod.INDIRECT
        else:
            self.method = SignMethod.DIRECT
        self.psbt_input = ""
        self.warning = None

    def edit(self, text: str) -> None:
        if self.method != SignMethod.INDIRECT:
            return
        self.psbt_input = text
        self.warning = None

    def submit(self, text: str | None = None) -> Psbt | None:
        """
        Accept the pasted signed PSBT.

        Returns the signed PSBT, or None if the input was rejected or the
        collector is not in indirect mode.
        """
        if self.method != SignMethod.INDIRECT:
            logger.debug(f"Ignoring pasted PSBT for {self.kind.value}: direct signing selected")
            return None
        if text is not None:
            self.psbt_input = text
        if not self.psbt_input:
            return None

        try:
            signed = decode_signed_psbt(self.original, self.psbt_input)
        except (DecodeError, IdentityMismatch) as e:
            self.warning = e
            return None

        return self._accept(signed)

    def report_signed(self, signed: Psbt) -> Psbt | None:
        """Accept a PSBT signed by the attached signer."""
        if self.method != SignMethod.DIRECT:
            logger.debug(f"Ignoring signer result for {self.kind.value}: indirect signing selected")
            return None
        try:
            return self._accept(signed)
        except IdentityMismatch as e:
            self.warning = e
            return None

    def report_failure(self, message: str) -> None:
        """The attached signer failed to sign."""
        self.warning = VaultError(message)

    def _accept(self, signed: Psbt) -> Psbt:
        self.envelope = self.envelope.with_signed(signed)
        self.warning = None
        logger.debug(f"Accepted signed {self.kind.value} transaction {signed.unsigned_txid}")
        return signed

    def notify_success(self) -> None:
        """The daemon accepted the signed transaction."""
        self.sharing_status = SharingStatus.SUCCESS


class SingleSignatureCoordinator(ABC):
    """
    Drives one collector and shares its signed PSBT with the daemon.

    Subclasses implement `_send`. Only one submission can be in flight; once
    the daemon accepted the transaction or the coordinator was discarded,
    further signing events are ignored.
    """

    def __init__(self, original: Psbt, kind: TransactionKind):
        self.signer = SignatureCollector(original, kind)
        self.warning: DaemonError | None = None
        self.submitting = False
        self.discarded = False

    @property
    def done(self) -> bool:
        return self.signer.is_shared

    @property
    def signed(self) -> Psbt | None:
        return self.signer.signed

    def change_method(self) -> None:
        if not self._locked():
            self.signer.change_method()

    def edit(self, text: str) -> None:
        if not self._locked():
            self.signer.edit(text)

    async def submit(self, text: str | None = None) -> bool:
        """Accept a pasted signed PSBT and share it. Returns True once shared."""
        if self._locked():
            return False
        if self.signer.submit(text) is None:
            return False
        return await self._share()

    async def report_signed(self, signed: Psbt) -> bool:
        """Accept a PSBT from the attached signer and share it. Returns True once shared."""
        if self._locked():
            return False
        if self.signer.report_signed(signed) is None:
            return False
        return await self._share()

    async def retry(self) -> bool:
        """Share the already signed PSBT again after a daemon failure."""
        if self._locked() or self.signer.signed is None:
            return False
        return await self._share()

    def discard(self) -> None:
        self.discarded = True

    def _locked(self) -> bool:
        if self.discarded:
            return True
        if self.submitting:
            logger.debug(f"Ignoring {self.signer.kind.value} signature: submission in flight")
            return True
        return self.done

    async def _share(self) -> bool:
        signed = self.signer.signed
        if signed is None:
            return False
        self.submitting = True
        self.warning = None
        try:
            await self._send(signed)
        except DaemonError as e:
            if not self.discarded:
                logger.warning(f"Failed to share {self.signer.kind.value} transaction: {e}")
                self.warning = e
            return False
        finally:
            self.submitting = False

        if self.discarded:
            logger.debug(f"Dropping response for discarded {self.signer.kind.value} signing")
            return False
        self.signer.notify_success()
        logger.info(f"Shared signed {self.signer.kind.value} transaction {signed.unsigned_txid}")
        return True

    @abstractmethod
    async def _send(self, signed: Psbt) -> None:
        """Share the signed PSBT with the daemon, raising DaemonError on failure"""
