"""
Configuration management for the vault client.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from revaultd_client.backend import DaemonBackend
from revaultd_client.rpc import RevaultDClient

from revault_gui.spend import DEFAULT_FEERATE, ManagerSendFlow


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REVAULT_GUI_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: Literal["bitcoin", "testnet", "signet", "regtest"] = "bitcoin"

    # Daemon connection, the socket takes precedence over the URL
    revaultd_socket: Path | None = None
    revaultd_url: str = "http://127.0.0.1:8080"
    rpc_timeout: float = Field(default=30.0, gt=0)

    poll_interval: float = Field(default=30.0, gt=0, description="Seconds between vault snapshots")
    default_feerate: int = Field(default=DEFAULT_FEERATE, ge=1, description="sat/vbyte")

    log_level: str = "INFO"

    def create_client(self) -> RevaultDClient:
        return RevaultDClient(
            rpc_url=self.revaultd_url,
            socket_path=self.revaultd_socket,
            timeout=self.rpc_timeout,
        )

    def create_send_flow(self, daemon: DaemonBackend) -> ManagerSendFlow:
        """Spend flow starting at the default feerate, accepting addresses of `network` only."""
        return ManagerSendFlow(daemon, feerate=self.default_feerate, network=self.network)


def get_settings() -> Settings:
    return Settings()
