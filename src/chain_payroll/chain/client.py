"""Build web3 clients bound to one configured network and signer.

Every orchestration run constructs its own :class:`ChainClientBundle`; the
bundle owns the signer and is never shared between concurrent runs, so two
runs can never race each other for the same nonce. Read-only clients (used
for ENS lookups) carry no key material and may be shared freely.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from chain_payroll.chain.abi import PAYROLL_ABI
from chain_payroll.chain.chains import Chain, get_chain
from chain_payroll.config import Settings, has_unexpanded_placeholder
from chain_payroll.errors import ConfigurationError, ConnectivityError

logger = logging.getLogger("chain_payroll.chain.client")

# Tokens that show up in .env templates and never in a working endpoint.
PLACEHOLDER_TOKENS = ("YOUR_ALCHEMY_API_KEY", "YOUR_API_KEY", "YOUR_PROJECT_ID")

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
# Alchemy (/v2/<key>) and Infura (/v3/<key>) style secret path segments.
_SECRET_PATH_RE = re.compile(r"/(v[0-9]+)/[^/?#\s'\"]+")
_SECRET_QUERY_RE = re.compile(r"([?&](?:api_?key|key|token)=)[^&#\s'\"]*", re.IGNORECASE)


def mask_rpc_url(url: str) -> str:
    """Replace the secret parts of an RPC URL with ``***``.

    ``https://arb-sepolia.g.alchemy.com/v2/abc123`` becomes
    ``https://arb-sepolia.g.alchemy.com/v2/***``. Works on free text too, so
    transport errors that quote the request path can be passed through it.
    """
    masked = _SECRET_PATH_RE.sub(r"/\1/***", url)
    return _SECRET_QUERY_RE.sub(r"\1***", masked)


def error_text(exc: BaseException) -> str:
    """``str(exc)`` with any RPC secrets masked."""
    return mask_rpc_url(str(exc))


@dataclass(frozen=True)
class Deployment:
    """Address and ABI of a deployed contract."""

    address: str
    abi: list


@dataclass(frozen=True)
class ChainClientBundle:
    """A read client, the signer that goes with it, and the chain they target."""

    read: Web3
    signer: LocalAccount
    chain: Chain

    @property
    def address(self) -> str:
        return self.signer.address


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def validate_rpc_url(rpc_url: str, setting: str = "RPC_URL") -> None:
    """Reject a missing RPC URL or one that still holds a template placeholder."""
    if not rpc_url or not rpc_url.strip():
        raise ConfigurationError(
            f"Missing blockchain configuration: {setting} is required"
        )
    if has_unexpanded_placeholder(rpc_url):
        raise ConfigurationError(
            f"Missing blockchain configuration: {setting} refers to an unset "
            f"environment variable ({rpc_url})"
        )
    for token in PLACEHOLDER_TOKENS:
        if token in rpc_url:
            raise ConfigurationError(
                "Invalid RPC URL: replace the placeholder in your configuration "
                f"with an actual API key. Current URL: {mask_rpc_url(rpc_url)}"
            )


def validate_private_key(private_key: str) -> None:
    """Require ``0x`` followed by exactly 64 hex characters."""
    if not private_key or has_unexpanded_placeholder(private_key):
        raise ConfigurationError(
            "Missing blockchain configuration: PRIVATE_KEY is required"
        )
    if not _PRIVATE_KEY_RE.match(private_key):
        raise ConfigurationError(
            "Invalid PRIVATE_KEY format. Expected: 0x followed by 64 hex "
            f"characters. Got: {private_key[:10]}... (length: {len(private_key)})"
        )


# ------------------------------------------------------------------
# Client construction
# ------------------------------------------------------------------


def _make_web3(rpc_url: str, chain: Chain, timeout: float) -> Web3:
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    # Inject POA middleware for non-mainnet chains (Arbitrum, testnets)
    if chain.chain_id != 1:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


def _probe(w3: Web3, rpc_url: str, chain: Chain) -> None:
    """Fetch the chain id and check it against the configured chain."""
    masked = mask_rpc_url(rpc_url)
    try:
        chain_id = w3.eth.chain_id
    except (Web3Exception, OSError, ValueError) as exc:
        raise ConnectivityError(
            "Failed to connect to RPC endpoint. The RPC URL may be invalid or "
            f"require authentication. Error: {error_text(exc)}. RPC URL: {masked}",
            rpc_url=masked,
        ) from exc
    if chain_id != chain.chain_id:
        raise ConfigurationError(
            f"RPC endpoint {masked} serves chain id {chain_id}, but "
            f"'{chain.name}' ({chain.chain_id}) is configured"
        )
    logger.info(f"Connected to chain ID: {chain_id} via {masked}")


def _resolve_chain(name: str) -> Chain:
    try:
        return get_chain(name)
    except KeyError as exc:
        raise ConfigurationError(str(exc.args[0])) from exc


def build_clients(settings: Settings, *, probe: bool = True) -> ChainClientBundle:
    """Validate configuration and return a fresh client bundle.

    Raises
    ------
    ConfigurationError
        RPC URL or key missing, placeholder not replaced, key malformed,
        unknown chain, or the endpoint serves a different chain.
    ConnectivityError
        The liveness probe failed at the transport or parse layer.
    """
    net = settings.network
    validate_rpc_url(net.rpc_url)
    validate_private_key(net.private_key)
    chain = _resolve_chain(net.chain)

    w3 = _make_web3(net.rpc_url, chain, net.request_timeout)
    signer: LocalAccount = Account.from_key(net.private_key)
    if probe:
        _probe(w3, net.rpc_url, chain)
    return ChainClientBundle(read=w3, signer=signer, chain=chain)


def build_read_client(
    rpc_url: str,
    chain_name: str = "ethereum",
    *,
    timeout: float = 30.0,
    probe: bool = True,
) -> Web3:
    """Return a keyless client, e.g. a mainnet client for ENS lookups."""
    validate_rpc_url(rpc_url, setting="ENS RPC URL")
    chain = _resolve_chain(chain_name)
    w3 = _make_web3(rpc_url, chain, timeout)
    if probe:
        _probe(w3, rpc_url, chain)
    return w3


# ------------------------------------------------------------------
# Deployment artifacts
# ------------------------------------------------------------------


def load_deployment(path: Path, chain_id: int, name: str = "Payroll") -> Deployment:
    """Read a contract's address and ABI from a deployment artifact.

    The artifact maps chain ids to contract names:
    ``{"421614": {"Payroll": {"address": "0x...", "abi": [...]}}}``.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Deployment file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Deployment file {path} is not valid JSON: {exc}") from exc

    contract = (data.get(str(chain_id)) or {}).get(name)
    if not contract or not contract.get("address"):
        raise ConfigurationError(
            f"{name} contract not found in deployed contracts for chain "
            f"{chain_id}. Make sure the contract is deployed."
        )
    if not Web3.is_address(contract["address"]):
        raise ConfigurationError(
            f"{name} deployment has an invalid address: {contract['address']}"
        )
    return Deployment(
        address=Web3.to_checksum_address(contract["address"]),
        abi=contract.get("abi") or PAYROLL_ABI,
    )


def resolve_deployment(settings: Settings, chain: Chain) -> Deployment:
    """Pick the payroll deployment from an artifact file or a bare address."""
    cfg = settings.contract
    if cfg.deployment_file:
        return load_deployment(Path(cfg.deployment_file), chain.chain_id, cfg.name)
    address: Optional[str] = cfg.address or None
    if address is None or has_unexpanded_placeholder(address):
        raise ConfigurationError(
            f"{cfg.name} contract not configured: set contract.address or "
            "contract.deployment_file"
        )
    if not Web3.is_address(address):
        raise ConfigurationError(f"Invalid {cfg.name} contract address: {address}")
    return Deployment(address=Web3.to_checksum_address(address), abi=PAYROLL_ABI)
