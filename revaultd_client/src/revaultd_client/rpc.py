"""
JSON-RPC client for the vault daemon.

The daemon listens either on a Unix domain socket or on a TCP address; both
are reached through one shared httpx client.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from revaultd_client.backend import DaemonBackend, DaemonError
from revaultd_client.models import (
    DaemonInfo,
    RevocationTransactions,
    SpendTransaction,
    SpendTx,
    UnvaultTransaction,
    Vault,
    VaultStatus,
    VaultTransactions,
)
from revaultd_client.psbt import Psbt

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


class RevaultDClient(DaemonBackend):
    """
    Vault daemon client.

    One instance is shared by every coordinator of the application. Calls are
    independent: each one either returns the parsed result or raises
    DaemonError.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8080",
        socket_path: Path | str | None = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.socket_path = Path(socket_path) if socket_path else None
        if client is not None:
            self.client = client
        elif self.socket_path is not None:
            transport = httpx.AsyncHTTPTransport(uds=str(self.socket_path))
            self.client = httpx.AsyncClient(transport=transport, timeout=timeout)
        else:
            self.client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make an RPC call to the daemon.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPC result

        Raises:
            DaemonError: On transport, HTTP or RPC errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise DaemonError(f"{method} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise DaemonError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise DaemonError(f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise DaemonError(f"{method} returned a malformed response")

        if "error" in data and data["error"]:
            error_info = data["error"]
            if isinstance(error_info, dict):
                raise DaemonError(
                    error_info.get("message", str(error_info)), error_info.get("code")
                )
            raise DaemonError(str(error_info))

        return data.get("result")

    async def _call_model(self, model: type, method: str, params: list | None = None) -> Any:
        result = await self._rpc_call(method, params)
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise DaemonError(f"Unexpected {method} response: {e}") from e

    async def get_info(self) -> DaemonInfo:
        return await self._call_model(DaemonInfo, "getinfo")

    async def list_vaults(
        self, statuses: Sequence[VaultStatus] | None = None, outpoints: Sequence[str] | None = None
    ) -> list[Vault]:
        params: list[Any] = []
        if statuses is not None or outpoints is not None:
            params = [[s.value for s in statuses or []], list(outpoints or [])]
        result = await self._rpc_call("listvaults", params)
        try:
            return [Vault.model_validate(v) for v in result["vaults"]]
        except (KeyError, TypeError, ValidationError) as e:
            raise DaemonError(f"Unexpected listvaults response: {e}") from e

    async def get_onchain_transactions(self, outpoint: str) -> VaultTransactions:
        result = await self._rpc_call("listonchaintransactions", [[outpoint]])
        try:
            txs = result["onchain_transactions"]
            if not txs:
                raise DaemonError(f"No onchain transactions for vault {outpoint}")
            return VaultTransactions.model_validate(txs[0])
        except (KeyError, TypeError, ValidationError) as e:
            raise DaemonError(f"Unexpected listonchaintransactions response: {e}") from e

    async def get_unvault_transaction(self, outpoint: str) -> Psbt:
        tx = await self._call_model(UnvaultTransaction, "getunvaulttx", [outpoint])
        return tx.unvault_tx

    async def get_revocation_transactions(self, outpoint: str) -> RevocationTransactions:
        return await self._call_model(RevocationTransactions, "getrevocationtxs", [outpoint])

    async def set_unvault_transaction(self, outpoint: str, signed: Psbt) -> None:
        await self._rpc_call("unvaulttx", [outpoint, signed.to_base64()])
        logger.debug(f"Shared unvault transaction of {outpoint}")

    async def set_revocation_transactions(
        self,
        outpoint: str,
        emergency: Psbt,
        emergency_unvault: Psbt,
        cancel: Psbt,
    ) -> None:
        await self._rpc_call(
            "revocationtxs",
            [outpoint, cancel.to_base64(), emergency.to_base64(), emergency_unvault.to_base64()],
        )
        logger.debug(f"Shared revocation transactions of {outpoint}")

    async def get_spend_transaction(
        self, outpoints: Sequence[str], outputs: dict[str, int], feerate: int
    ) -> SpendTransaction:
        return await self._call_model(
            SpendTransaction, "getspendtx", [list(outpoints), outputs, feerate]
        )

    async def update_spend_transaction(self, psbt: Psbt) -> None:
        await self._rpc_call("updatespendtx", [psbt.to_base64()])

    async def list_spend_transactions(self) -> list[SpendTx]:
        result = await self._rpc_call("listspendtxs")
        try:
            return [SpendTx.model_validate(tx) for tx in result["spend_txs"]]
        except (KeyError, TypeError, ValidationError) as e:
            raise DaemonError(f"Unexpected listspendtxs response: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
