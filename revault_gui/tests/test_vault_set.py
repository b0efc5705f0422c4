"""
Tests for revault_gui.vaults
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from revaultd_client.backend import DaemonError
from revaultd_client.models import CURRENT_STATUSES, VaultStatus
from revaultd_client.rpc import RevaultDClient

from revault_gui import vaults as vaults_module
from revault_gui.vault import Delegate
from revault_gui.vaults import StatusChange, VaultSetController


class TestPoll:
    @pytest.mark.asyncio
    async def test_first_snapshot(self, daemon, make_vault):
        vaults = [make_vault(VaultStatus.FUNDED, index=1), make_vault(VaultStatus.ACTIVE, index=2)]
        daemon.list_vaults.return_value = vaults
        controller = VaultSetController(daemon)

        changes = await controller.poll()

        assert controller.blockheight == 100
        assert controller.vaults == vaults
        assert not controller.loading
        assert changes == [
            StatusChange(vaults[0].outpoint, None, VaultStatus.FUNDED),
            StatusChange(vaults[1].outpoint, None, VaultStatus.ACTIVE),
        ]
        daemon.list_vaults.assert_awaited_once_with(CURRENT_STATUSES)

    @pytest.mark.asyncio
    async def test_status_changes(self, daemon, make_vault):
        controller = VaultSetController(daemon)
        controller.apply_snapshot(
            [make_vault(VaultStatus.SECURING, index=1), make_vault(VaultStatus.ACTIVE, index=2)]
        )

        secured = make_vault(VaultStatus.SECURED, index=1)
        changes = controller.apply_snapshot([secured])

        assert changes == [
            StatusChange(secured.outpoint, VaultStatus.SECURING, VaultStatus.SECURED),
            StatusChange(make_vault(index=2).outpoint, VaultStatus.ACTIVE, None),
        ]
        assert controller.vaults == [secured]

    @pytest.mark.asyncio
    async def test_unchanged_snapshot(self, daemon, make_vault):
        controller = VaultSetController(daemon)
        controller.apply_snapshot([make_vault(VaultStatus.ACTIVE)])
        assert controller.apply_snapshot([make_vault(VaultStatus.ACTIVE)]) == []

    @pytest.mark.asyncio
    async def test_daemon_error(self, daemon, make_vault):
        controller = VaultSetController(daemon)
        controller.apply_snapshot([make_vault()])
        daemon.list_vaults.side_effect = DaemonError("connection refused")

        assert await controller.poll() == []

        assert str(controller.warning) == "connection refused"
        assert not controller.loading
        assert len(controller.vaults) == 1

    @pytest.mark.asyncio
    async def test_blockheight_error(self, daemon):
        daemon.get_block_height.side_effect = DaemonError("no info")
        controller = VaultSetController(daemon)
        await controller.poll()
        assert str(controller.warning) == "no info"
        daemon.list_vaults.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_daemon_reply(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json=["not", "an", "object"])
        )
        controller = VaultSetController(
            RevaultDClient(client=httpx.AsyncClient(transport=transport))
        )

        assert await controller.poll() == []

        assert "malformed response" in str(controller.warning)
        assert not controller.loading

    @pytest.mark.asyncio
    async def test_run_reports_changes(self, daemon, make_vault, monkeypatch):
        vault = make_vault(VaultStatus.ACTIVE)
        daemon.list_vaults.side_effect = [[vault], [vault], []]
        sleep = AsyncMock(side_effect=[None, None, asyncio.CancelledError()])
        monkeypatch.setattr(vaults_module.asyncio, "sleep", sleep)
        reported = []
        controller = VaultSetController(daemon)

        with pytest.raises(asyncio.CancelledError):
            await controller.run(12.5, on_changes=reported.append)

        assert reported == [
            [StatusChange(vault.outpoint, None, VaultStatus.ACTIVE)],
            [StatusChange(vault.outpoint, VaultStatus.ACTIVE, None)],
        ]
        sleep.assert_awaited_with(12.5)
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_run_polls_until_cancelled(self, daemon):
        controller = VaultSetController(daemon)
        task = asyncio.create_task(controller.run(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert daemon.list_vaults.await_count >= 2


class TestFilter:
    @pytest.mark.asyncio
    async def test_apply_filter(self, daemon, make_vault):
        funded = make_vault(VaultStatus.FUNDED)
        daemon.list_vaults.return_value = [funded]
        controller = VaultSetController(daemon)

        await controller.apply_filter([VaultStatus.FUNDED])

        daemon.list_vaults.assert_awaited_once_with((VaultStatus.FUNDED,))
        assert controller.status_filter == (VaultStatus.FUNDED,)
        assert controller.vaults == [funded]

    @pytest.mark.asyncio
    async def test_stale_response_dropped(self, daemon, make_vault, gate):
        """A slow response for a replaced filter must not overwrite the newer one."""
        slow = gate([make_vault(VaultStatus.SPENT, index=9)])
        active = make_vault(VaultStatus.ACTIVE, index=1)
        calls = iter([slow.call, None])

        async def list_vaults(statuses):
            handler = next(calls)
            if handler is not None:
                return await handler(statuses)
            return [active]

        daemon.list_vaults.side_effect = list_vaults
        controller = VaultSetController(daemon)

        first = asyncio.create_task(controller.apply_filter([VaultStatus.SPENT]))
        await asyncio.sleep(0)
        await controller.apply_filter([VaultStatus.ACTIVE])
        slow.release()

        assert await first == []
        assert controller.vaults == [active]
        assert controller.status_filter == (VaultStatus.ACTIVE,)
        assert not controller.loading

    @pytest.mark.asyncio
    async def test_stale_error_dropped(self, daemon, make_vault, gate):
        slow = gate(DaemonError("late"))
        calls = iter([slow.call, None])

        async def list_vaults(statuses):
            handler = next(calls)
            if handler is not None:
                return await handler(statuses)
            return [make_vault(VaultStatus.ACTIVE)]

        daemon.list_vaults.side_effect = list_vaults
        controller = VaultSetController(daemon)

        first = asyncio.create_task(controller.apply_filter([VaultStatus.SPENT]))
        await asyncio.sleep(0)
        await controller.apply_filter([VaultStatus.ACTIVE])
        slow.release()
        await first

        assert controller.warning is None


class TestSelection:
    @pytest.mark.asyncio
    async def test_select_toggles(self, daemon, make_vault):
        vault = make_vault()
        controller = VaultSetController(daemon)
        controller.apply_snapshot([vault])

        lifecycle = await controller.select_vault(vault.outpoint)
        assert controller.selected is lifecycle
        daemon.get_onchain_transactions.assert_awaited_once_with(vault.outpoint)

        assert await controller.select_vault(vault.outpoint) is None
        assert controller.selected is None
        assert lifecycle.closed

    @pytest.mark.asyncio
    async def test_select_other_closes_previous(self, daemon, make_vault):
        first, second = make_vault(index=1), make_vault(index=2)
        controller = VaultSetController(daemon)
        controller.apply_snapshot([first, second])

        previous = await controller.select_vault(first.outpoint)
        current = await controller.select_vault(second.outpoint)

        assert previous.closed
        assert controller.selected is current
        assert current.outpoint == second.outpoint

    @pytest.mark.asyncio
    async def test_select_unknown(self, daemon):
        controller = VaultSetController(daemon)
        assert await controller.select_vault("ff" * 32 + ":0") is None
        daemon.get_onchain_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_refreshes_selected(self, daemon, make_vault):
        vault = make_vault(VaultStatus.SECURING)
        controller = VaultSetController(daemon)
        controller.apply_snapshot([vault])
        lifecycle = await controller.select_vault(vault.outpoint)

        controller.apply_snapshot([make_vault(VaultStatus.SECURED)])
        assert lifecycle.vault.status == VaultStatus.SECURED

        controller.apply_snapshot([])
        assert controller.selected is lifecycle
        assert lifecycle.vault.status == VaultStatus.SECURED

    @pytest.mark.asyncio
    async def test_delegate_reuses_selection(self, daemon, make_vault, make_psbt):
        vault = make_vault(VaultStatus.SECURED)
        daemon.get_unvault_transaction.return_value = make_psbt("aa" * 32)
        controller = VaultSetController(daemon)
        controller.apply_snapshot([vault])
        selected = await controller.select_vault(vault.outpoint)

        lifecycle = await controller.delegate(vault.outpoint)

        assert lifecycle is selected
        assert isinstance(lifecycle.section, Delegate)

    @pytest.mark.asyncio
    async def test_delegate_unselected_vault(self, daemon, make_vault, make_psbt):
        first, second = make_vault(index=1), make_vault(index=2)
        daemon.get_unvault_transaction.return_value = make_psbt("aa" * 32)
        controller = VaultSetController(daemon)
        controller.apply_snapshot([first, second])
        previous = await controller.select_vault(first.outpoint)

        lifecycle = await controller.delegate(second.outpoint)

        assert previous.closed
        assert controller.selected is lifecycle
        daemon.get_unvault_transaction.assert_awaited_once_with(second.outpoint)


class TestBalance:
    def test_balance_follows_snapshot(self, daemon, make_vault):
        controller = VaultSetController(daemon)
        controller.apply_snapshot(
            [
                make_vault(VaultStatus.ACTIVE, amount=300_000, index=1),
                make_vault(VaultStatus.UNVAULTING, amount=50_000, index=2),
                make_vault(VaultStatus.FUNDED, amount=200_000, index=3),
                make_vault(VaultStatus.SPENDING, amount=10_000, index=4),
            ]
        )
        assert controller.balance == (350_000, 200_000)
        assert controller.balance_by_status[VaultStatus.FUNDED] == (1, 200_000)
        assert VaultStatus.SPENDING not in controller.balance_by_status
        assert controller.with_status([VaultStatus.FUNDED])[0].amount == 200_000

    def test_moving_vaults(self, daemon, make_vault):
        controller = VaultSetController(daemon)
        canceling = make_vault(VaultStatus.CANCELING, index=1)
        unvaulted = make_vault(VaultStatus.UNVAULTED, index=2)
        controller.apply_snapshot(
            [canceling, make_vault(VaultStatus.ACTIVE, index=3), unvaulted]
        )
        assert controller.moving_vaults == [canceling, unvaulted]
