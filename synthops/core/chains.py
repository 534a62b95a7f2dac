"""Supported network configurations."""

from __future__ import annotations

from dataclasses import dataclass

from synthops.core.config import Settings
from synthops.core.errors import NetworkError


@dataclass(frozen=True)
class NetworkConfig:
    """Configuration for a network the protocol is deployed on."""

    name: str
    chain_id: int
    explorer_url: str
    is_mainnet: bool = False
    is_local: bool = False

    @property
    def explorer_link_prefix(self) -> str:
        return self.explorer_url.rstrip("/")

    def tx_link(self, tx_hash: str) -> str:
        if not self.explorer_url:
            return tx_hash
        return f"{self.explorer_link_prefix}/tx/{tx_hash}"

    def address_link(self, address: str) -> str:
        if not self.explorer_url:
            return address
        return f"{self.explorer_link_prefix}/address/{address}"


# ── Network Registry ─────────────────────────────────────────────────────────

NETWORKS: dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        name="mainnet",
        chain_id=1,
        explorer_url="https://etherscan.io",
        is_mainnet=True,
    ),
    "goerli": NetworkConfig(
        name="goerli",
        chain_id=5,
        explorer_url="https://goerli.etherscan.io",
    ),
    "sepolia": NetworkConfig(
        name="sepolia",
        chain_id=11155111,
        explorer_url="https://sepolia.etherscan.io",
    ),
    "optimism": NetworkConfig(
        name="optimism",
        chain_id=10,
        explorer_url="https://optimistic.etherscan.io",
    ),
    "local": NetworkConfig(
        name="local",
        chain_id=31337,
        explorer_url="",
        is_local=True,
    ),
}


def get_network_config(network: str) -> NetworkConfig | None:
    """Get network configuration by name."""
    return NETWORKS.get(network.lower())


def ensure_network(network: str) -> NetworkConfig:
    """Return the config for ``network`` or raise if it is not supported."""
    config = get_network_config(network)
    if config is None:
        raise NetworkError(
            f"Invalid network '{network}'. Must be one of: {', '.join(sorted(NETWORKS))}",
            details={"network": network},
        )
    return config


def resolve_provider_url(network: NetworkConfig, settings: Settings, use_fork: bool = False) -> str:
    """Pick the RPC endpoint for a run.

    A fork always points at the local fork node; ``local`` uses the local
    node; everything else expands the ``provider_url`` template.
    """
    if use_fork:
        return settings.fork_url
    if network.is_local:
        return settings.local_url
    return settings.provider_url.format(network=network.name, api_key=settings.infura_api_key)
