"""
Tests for revault_gui.config
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from revault_gui.config import Settings
from revault_gui.spend import SpendProposalBuilder


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REVAULT_GUI_POLL_INTERVAL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.network == "bitcoin"
        assert settings.revaultd_socket is None
        assert settings.poll_interval == 30.0
        assert settings.default_feerate == 20

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("REVAULT_GUI_NETWORK", "regtest")
        monkeypatch.setenv("REVAULT_GUI_POLL_INTERVAL", "5")
        monkeypatch.setenv("REVAULT_GUI_REVAULTD_SOCKET", "/tmp/revaultd/regtest/revaultd_rpc")

        settings = Settings(_env_file=None)

        assert settings.network == "regtest"
        assert settings.poll_interval == 5.0
        assert settings.revaultd_socket == Path("/tmp/revaultd/regtest/revaultd_rpc")

    def test_invalid_network(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, network="mainnet")

    def test_invalid_feerate(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, default_feerate=0)

    def test_create_client_over_socket(self, tmp_path):
        settings = Settings(_env_file=None, revaultd_socket=tmp_path / "revaultd_rpc")
        client = settings.create_client()
        assert client.socket_path == tmp_path / "revaultd_rpc"

    def test_create_client_over_tcp(self):
        settings = Settings(_env_file=None, revaultd_url="http://127.0.0.1:9999/")
        client = settings.create_client()
        assert client.socket_path is None
        assert client.rpc_url == "http://127.0.0.1:9999"

    def test_create_send_flow(self):
        settings = Settings(_env_file=None, network="regtest", default_feerate=7)
        flow = settings.create_send_flow(MagicMock())
        assert isinstance(flow.state, SpendProposalBuilder)
        assert flow.state.feerate == 7
        assert flow.state.network == "regtest"
