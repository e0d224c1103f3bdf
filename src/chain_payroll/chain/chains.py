"""Chain definitions for the EVM networks a payroll can be deployed on."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Chain:
    """An EVM-compatible blockchain network."""

    name: str
    chain_id: int
    native_symbol: str
    explorer_url: str

    def tx_url(self, tx_hash: str) -> str:
        """Explorer link for a transaction, or ``""`` when there is no explorer."""
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url}/tx/{tx_hash}"


CHAINS: dict[str, Chain] = {
    "arbitrum-sepolia": Chain(
        name="arbitrum-sepolia",
        chain_id=421614,
        native_symbol="ETH",
        explorer_url="https://sepolia.arbiscan.io",
    ),
    "arbitrum": Chain(
        name="arbitrum",
        chain_id=42161,
        native_symbol="ETH",
        explorer_url="https://arbiscan.io",
    ),
    "ethereum": Chain(
        name="ethereum",
        chain_id=1,
        native_symbol="ETH",
        explorer_url="https://etherscan.io",
    ),
    "sepolia": Chain(
        name="sepolia",
        chain_id=11155111,
        native_symbol="ETH",
        explorer_url="https://sepolia.etherscan.io",
    ),
    "hardhat": Chain(
        name="hardhat",
        chain_id=31337,
        native_symbol="ETH",
        explorer_url="",
    ),
}


def get_chain(name: str) -> Chain:
    """Get a chain by name. Raises ``KeyError`` if not found."""
    if name not in CHAINS:
        raise KeyError(
            f"Unknown chain '{name}'. Available: {list_chain_names()}"
        )
    return CHAINS[name]


def list_chain_names() -> list[str]:
    """Return the names of all supported chains."""
    return list(CHAINS.keys())
