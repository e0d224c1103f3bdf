"""Configuration system for chain-payroll.

Loads settings from a YAML file, supports environment variable expansion,
and falls back to an environment-driven template when no file is given.
Secrets (RPC URL, private key) normally live in the environment and are
referenced from YAML as ``${VAR}``.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from chain_payroll.chain.abi import ENS_REGISTRY_ADDRESS


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that the
    client factory can reject it before any network call.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


def has_unexpanded_placeholder(value: str) -> bool:
    """True if *value* still contains a ``${VAR}`` placeholder."""
    return bool(_ENV_VAR_RE.search(value))


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class NetworkConfig(BaseModel):
    """The single chain a payroll run submits transactions to."""

    chain: str = "arbitrum-sepolia"
    rpc_url: str = ""
    private_key: str = ""
    request_timeout: float = 30.0  # seconds per JSON-RPC request


class ContractConfig(BaseModel):
    """Where the deployed Payroll contract lives.

    ``deployment_file`` points at a deployment artifact of the form
    ``{"<chainId>": {"Payroll": {"address": ..., "abi": [...]}}}``. When it is
    empty, ``address`` is used together with the bundled minimal ABI.
    """

    name: str = "Payroll"
    address: str = ""
    deployment_file: str = ""


class ConfirmationConfig(BaseModel):
    """How long and how deep to wait for each transaction."""

    timeout_seconds: float = 120.0
    poll_latency: float = 0.5
    confirmations: int = 1  # 1 == included in a block


class EnsConfig(BaseModel):
    """ENS lookups run against mainnet, independently of the payroll chain."""

    chain: str = "ethereum"
    rpc_url: str = ""
    registry_address: str = ENS_REGISTRY_ADDRESS


class Settings(BaseModel):
    """Root configuration object."""

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    contract: ContractConfig = Field(default_factory=ContractConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    ens: EnsConfig = Field(default_factory=EnsConfig)
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_level(cls, value: object) -> str:
        level = str(value).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{value}'")
        return level


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def _env_template() -> dict:
    """Settings skeleton used when no config file is given."""
    rpc_var = "RPC_URL" if os.environ.get("RPC_URL") else "NEXT_PUBLIC_RPC_URL"
    return {
        "network": {
            "chain": os.environ.get("PAYROLL_CHAIN", "arbitrum-sepolia"),
            "rpc_url": f"${{{rpc_var}}}",
            "private_key": "${PRIVATE_KEY}",
        },
        "contract": {
            "address": os.environ.get("PAYROLL_CONTRACT_ADDRESS", ""),
            "deployment_file": os.environ.get("PAYROLL_DEPLOYMENT_FILE", ""),
        },
        "ens": {
            "rpc_url": os.environ.get("ENS_RPC_URL", ""),
        },
        "log_level": os.environ.get("PAYROLL_LOG_LEVEL", "INFO"),
    }


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load and validate settings from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation. Without *path*, settings are built from the environment
    (``RPC_URL`` or ``NEXT_PUBLIC_RPC_URL``, ``PRIVATE_KEY``,
    ``PAYROLL_CONTRACT_ADDRESS``, ``PAYROLL_DEPLOYMENT_FILE``, ``ENS_RPC_URL``,
    ``PAYROLL_LOG_LEVEL``).
    """
    if path is None:
        raw_data: object = _env_template()
    else:
        raw_text = Path(path).read_text(encoding="utf-8")
        raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return Settings.model_validate(expanded)


def save_settings(settings: Settings, path: Path) -> None:
    """Serialize :class:`Settings` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="python", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)


def load_document(path: Path) -> dict:
    """Read a JSON or YAML document into a dict (by file suffix)."""
    text = Path(path).read_text(encoding="utf-8")
    if Path(path).suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data
