"""
Spend transaction creation for managers.

The manager picks recipients, active vaults to spend and a feerate; the
daemon builds the spend transaction, which is then signed and stored back in
the daemon. An already assembled spend transaction can be imported instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

import base58
import bech32
from loguru import logger
from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import SpendTx, TransactionKind, Vault, VaultStatus
from revaultd_client.psbt import Psbt, PsbtDecodeError

from revault_gui.errors import DecodeError, EmptySelection, ValidationError, VaultError
from revault_gui.sign import SignatureCollector, SingleSignatureCoordinator

DEFAULT_FEERATE = 20  # sat/vbyte

SATS_PER_BTC = 100_000_000
MAX_MONEY = 21_000_000 * SATS_PER_BTC

BECH32_HRPS = ("bcrt", "bc", "tb")
BASE58_VERSIONS = (0x00, 0x6F, 0x05, 0xC4)

# Bech32 prefixes and base58 version bytes accepted on each network
NETWORK_ADDRESS_PREFIXES: dict[str, tuple[tuple[str, ...], tuple[int, ...]]] = {
    "bitcoin": (("bc",), (0x00, 0x05)),
    "testnet": (("tb",), (0x6F, 0xC4)),
    "signet": (("tb",), (0x6F, 0xC4)),
    "regtest": (("bcrt",), (0x6F, 0xC4)),
}


def parse_amount(text: str) -> int:
    """
    Parse a BTC denominated amount into satoshis.

    An empty string is zero.

    Raises:
        ValidationError: If the amount is not a non-negative number with at
            most 8 decimals
    """
    text = text.strip()
    if not text:
        return 0
    try:
        btc = Decimal(text)
    except InvalidOperation as e:
        raise ValidationError("cannot parse output amount") from e
    if not btc.is_finite() or btc < 0:
        raise ValidationError("cannot parse output amount")
    sats = btc * SATS_PER_BTC
    if sats != sats.to_integral_value() or sats > MAX_MONEY:
        raise ValidationError("cannot parse output amount")
    return int(sats)


def validate_address(address: str, network: str | None = None) -> str:
    """
    Check that `address` is a segwit or legacy Bitcoin address.

    Args:
        address: Address typed by the manager
        network: Only accept addresses of this network, any network if None

    Raises:
        ValidationError: If the address cannot be decoded or belongs to
            another network
    """
    if network is None:
        hrps, versions = BECH32_HRPS, BASE58_VERSIONS
    else:
        hrps, versions = NETWORK_ADDRESS_PREFIXES[network]

    lowered = address.lower()
    for hrp in hrps:
        if lowered.startswith(hrp + "1"):
            witver, witprog = bech32.decode(hrp, address)
            if witver is None or witprog is None:
                raise ValidationError(f"invalid address: {address}")
            return address

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise ValidationError(f"invalid address: {address}") from e
    if len(decoded) != 21 or decoded[0] not in versions:
        raise ValidationError(f"invalid address: {address}")
    return address


class ManagerSendStep(str, Enum):
    WELCOME = "welcome"
    SELECT_OUTPUTS = "select_outputs"
    SELECT_INPUTS = "select_inputs"
    SELECT_FEE = "select_fee"
    SIGN = "sign"
    SUCCESS = "success"


@dataclass
class SpendInput:
    vault: Vault
    selected: bool = False


class SpendOutput:
    """A recipient as typed by the manager, validated on each edit."""

    def __init__(self, address: str = "", amount: str = "", network: str | None = None):
        self.network = network
        self.address = ""
        self.amount_input = ""
        self.warning_address = False
        self.warning_amount = False
        if address:
            self.edit_address(address)
        if amount:
            self.edit_amount(amount)

    def edit_address(self, address: str) -> None:
        self.address = address
        if self.address:
            try:
                validate_address(self.address, self.network)
                self.warning_address = False
            except ValidationError:
                self.warning_address = True

    def edit_amount(self, amount: str) -> None:
        self.amount_input = amount
        if self.amount_input:
            try:
                parse_amount(self.amount_input)
                self.warning_amount = False
            except ValidationError:
                self.warning_amount = True

    def amount(self) -> int:
        return parse_amount(self.amount_input)

    def valid(self) -> bool:
        return (
            bool(self.address)
            and not self.warning_address
            and bool(self.amount_input)
            and not self.warning_amount
        )


class SpendSigningCoordinator(SingleSignatureCoordinator):
    """Signs a spend transaction and stores the signed version in the daemon."""

    def __init__(self, daemon: DaemonBackend, psbt: Psbt):
        super().__init__(psbt, TransactionKind.SPEND)
        self.daemon = daemon

    @property
    def psbt(self) -> Psbt:
        return self.signed or self.signer.original

    async def _send(self, signed: Psbt) -> None:
        await self.daemon.update_spend_transaction(signed)


class SpendProposalBuilder:
    """
    Wizard building a spend transaction.

    Any edit of the inputs, outputs or feerate drops the transaction built by
    the daemon, so a stale proposal is never signed.
    """

    def __init__(
        self,
        daemon: DaemonBackend,
        feerate: int = DEFAULT_FEERATE,
        network: str | None = None,
    ):
        self.daemon = daemon
        self.network = network
        self.step = ManagerSendStep.WELCOME
        self.inputs: list[SpendInput] = []
        self.outputs: list[SpendOutput] = [SpendOutput(network=network)]
        self.feerate = feerate
        self.psbt: tuple[Psbt, int] | None = None
        self.processing = False
        self.signing: SpendSigningCoordinator | None = None
        self.warning: VaultError | DaemonError | None = None
        self._revision = 0

    @property
    def signer(self) -> SignatureCollector | None:
        return self.signing.signer if self.signing is not None else None

    async def load(self) -> None:
        """
        Fetch the active vaults that can be spent.

        Vaults still listed keep their selection. Replacing the inputs drops
        the built transaction, which was made for the previous list.
        """
        try:
            vaults = await self.daemon.list_vaults([VaultStatus.ACTIVE])
        except DaemonError as e:
            logger.warning(f"Failed to list active vaults: {e}")
            self.warning = e
            return
        selected = {vault.outpoint for vault in self.selected_inputs()}
        self._invalidate()
        self.inputs = [SpendInput(vault, vault.outpoint in selected) for vault in vaults]

    def selected_inputs(self) -> list[Vault]:
        return [spend_input.vault for spend_input in self.inputs if spend_input.selected]

    def input_amount(self) -> int:
        return sum(vault.amount for vault in self.selected_inputs())

    def output_amount(self) -> int:
        total = 0
        for output in self.outputs:
            try:
                total += output.amount()
            except ValidationError:
                continue
        return total

    def select_input(self, outpoint: str, selected: bool) -> bool:
        for spend_input in self.inputs:
            if spend_input.vault.outpoint == outpoint:
                self._invalidate()
                spend_input.selected = selected
                return True
        return False

    def add_output(self) -> None:
        self._invalidate()
        self.outputs.append(SpendOutput(network=self.network))

    def remove_output(self, index: int) -> None:
        if 0 <= index < len(self.outputs):
            self._invalidate()
            del self.outputs[index]

    def edit_output_address(self, index: int, address: str) -> None:
        if 0 <= index < len(self.outputs):
            self._invalidate()
            self.outputs[index].edit_address(address)

    def edit_output_amount(self, index: int, amount: str) -> None:
        if 0 <= index < len(self.outputs):
            self._invalidate()
            self.outputs[index].edit_amount(amount)

    def edit_feerate(self, feerate: int) -> bool:
        """Change the feerate, rejected while the daemon is building the transaction."""
        if self.processing:
            logger.debug("Ignoring feerate edit while a spend transaction is being built")
            return False
        self.feerate = feerate
        self._invalidate()
        return True

    def outputs_map(self) -> dict[str, int]:
        """
        Recipients as address -> amount, a repeated address keeps its last amount.

        Raises:
            ValidationError: If an address or amount is invalid
        """
        outputs: dict[str, int] = {}
        for output in self.outputs:
            validate_address(output.address, self.network)
            outputs[output.address] = output.amount()
        return outputs

    async def generate(self) -> bool:
        """Ask the daemon to build the spend transaction. Returns True when stored."""
        if self.processing:
            return False
        self.warning = None

        outpoints = [vault.outpoint for vault in self.selected_inputs()]
        if not outpoints:
            self.warning = EmptySelection()
            return False
        try:
            outputs = self.outputs_map()
        except ValidationError as e:
            self.warning = e
            return False
        if not outputs:
            self.warning = EmptySelection("no recipient")
            return False

        revision = self._revision
        feerate = self.feerate
        self.processing = True
        try:
            tx = await self.daemon.get_spend_transaction(outpoints, outputs, feerate)
        except DaemonError as e:
            if revision == self._revision:
                logger.warning(f"Failed to build spend transaction: {e}")
                self.warning = e
            return False
        finally:
            self.processing = False

        if revision != self._revision:
            logger.debug("Dropping spend transaction built for a previous proposal")
            return False
        self.psbt = (tx.spend_tx, tx.feerate)
        logger.debug(f"Spend transaction {tx.spend_tx.unsigned_txid} built at {tx.feerate} sat/vB")
        return True

    def next(self) -> None:
        if self.step == ManagerSendStep.WELCOME:
            self.step = ManagerSendStep.SELECT_OUTPUTS
        elif self.step == ManagerSendStep.SELECT_OUTPUTS:
            self.step = ManagerSendStep.SELECT_INPUTS
        elif self.step == ManagerSendStep.SELECT_INPUTS:
            self.step = ManagerSendStep.SELECT_FEE
        elif self.step == ManagerSendStep.SELECT_FEE and self.psbt is not None:
            self.signing = SpendSigningCoordinator(self.daemon, self.psbt[0])
            self.step = ManagerSendStep.SIGN

    def previous(self) -> None:
        if self.step == ManagerSendStep.SELECT_FEE:
            self.step = ManagerSendStep.SELECT_INPUTS
        elif self.step == ManagerSendStep.SIGN:
            self.drop_signing()
            self.step = ManagerSendStep.SELECT_FEE
        else:
            self.step = ManagerSendStep.SELECT_OUTPUTS

    def change_sign_method(self) -> None:
        if self.signing is not None:
            self.signing.change_method()

    async def submit_signature(self, text: str | None = None) -> bool:
        signing = self.signing
        if signing is None:
            return False
        return self._on_shared(signing, await signing.submit(text))

    async def report_signature(self, signed: Psbt) -> bool:
        signing = self.signing
        if signing is None:
            return False
        return self._on_shared(signing, await signing.report_signed(signed))

    async def retry(self) -> bool:
        signing = self.signing
        if signing is None:
            return False
        return self._on_shared(signing, await signing.retry())

    def _on_shared(self, signing: SpendSigningCoordinator, shared: bool) -> bool:
        if signing is not self.signing:
            return False
        if not shared:
            self.warning = signing.warning
            return False
        # The signed transaction replaces the one built by the daemon
        feerate = self.psbt[1] if self.psbt is not None else self.feerate
        self.psbt = (signing.psbt, feerate)
        self.step = ManagerSendStep.SUCCESS
        return True

    def _invalidate(self) -> None:
        self._revision += 1
        self.psbt = None
        if self.step == ManagerSendStep.SIGN:
            self.drop_signing()
            self.step = ManagerSendStep.SELECT_FEE

    def drop_signing(self) -> None:
        if self.signing is not None:
            self.signing.discard()
            self.signing = None


class SpendTransactionImporter:
    """Imports a spend transaction assembled outside of the wizard."""

    def __init__(self, daemon: DaemonBackend):
        self.daemon = daemon
        self.psbt_input = ""
        self.imported: Psbt | None = None
        self.processing = False
        self.warning: VaultError | DaemonError | None = None

    def edit(self, text: str) -> None:
        self.warning = None
        self.psbt_input = text

    async def import_transaction(self, text: str | None = None) -> Psbt | None:
        if text is not None:
            self.edit(text)
        if self.processing:
            return None
        try:
            psbt = Psbt.from_base64(self.psbt_input)
        except PsbtDecodeError:
            self.warning = DecodeError()
            return None

        self.processing = True
        try:
            await self.daemon.update_spend_transaction(psbt)
        except DaemonError as e:
            logger.warning(f"Failed to import spend transaction: {e}")
            self.warning = e
            return None
        finally:
            self.processing = False

        self.imported = psbt
        logger.info(f"Imported spend transaction {psbt.unsigned_txid}")
        return psbt


class SpendTransactionDetail(SpendSigningCoordinator):
    """An existing spend transaction, which can be signed and stored back."""

    pass


class ManagerSendFlow:
    """Create, import or inspect a spend transaction, one at a time."""

    def __init__(
        self,
        daemon: DaemonBackend,
        feerate: int = DEFAULT_FEERATE,
        network: str | None = None,
    ):
        self.daemon = daemon
        self.state: SpendProposalBuilder | SpendTransactionImporter | SpendTransactionDetail = (
            SpendProposalBuilder(daemon, feerate, network)
        )

    async def load(self) -> None:
        if isinstance(self.state, SpendProposalBuilder):
            await self.state.load()

    def request_import(self) -> None:
        if isinstance(self.state, SpendProposalBuilder):
            self.state.drop_signing()
            self.state = SpendTransactionImporter(self.daemon)

    def select(self, psbt: Psbt) -> None:
        if isinstance(self.state, SpendTransactionImporter):
            self.state = SpendTransactionDetail(self.daemon, psbt)


class SpendTransactionList:
    """Spend transactions stored by the daemon, one of them possibly selected."""

    def __init__(self, daemon: DaemonBackend):
        self.daemon = daemon
        self.spend_txs: list[SpendTx] = []
        self.selected: SpendTransactionDetail | None = None
        self.warning: DaemonError | None = None

    async def load(self) -> None:
        try:
            self.spend_txs = await self.daemon.list_spend_transactions()
        except DaemonError as e:
            logger.warning(f"Failed to list spend transactions: {e}")
            self.warning = e

    def select(self, txid: str) -> SpendTransactionDetail | None:
        """Toggle the selection of a spend transaction by its unsigned txid."""
        if self.selected is not None and self.selected.psbt.unsigned_txid == txid:
            self.selected.discard()
            self.selected = None
            return None

        spend_tx = next((tx for tx in self.spend_txs if tx.psbt.unsigned_txid == txid), None)
        if spend_tx is None:
            return None
        if self.selected is not None:
            self.selected.discard()
        self.selected = SpendTransactionDetail(self.daemon, spend_tx.psbt)
        return self.selected
