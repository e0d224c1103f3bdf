"""Validate payee identifiers and resolve ENS names to addresses.

An identifier is either a ``0x`` address literal (no network needed) or an
ENS-style name such as ``alice.eth``. Names are resolved with two reads:
the ENS registry's ``resolver(node)`` followed by that resolver's
``addr(node)``. A zero address at either hop means the name simply isn't
set up, and :meth:`EnsResolver.resolve` returns ``None``. Transport failures
and unexpected reverts raise :class:`ResolutionError` instead, so "not
found" and "could not ask" are never confused.
"""

from __future__ import annotations

import asyncio
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from web3 import Web3
from web3.exceptions import Web3Exception

from chain_payroll.chain.abi import (
    ENS_REGISTRY_ABI,
    ENS_REGISTRY_ADDRESS,
    ENS_RESOLVER_ABI,
    ZERO_ADDRESS,
)
from chain_payroll.chain.client import error_text
from chain_payroll.errors import ResolutionError, ValidationError
from chain_payroll.models import AddressKind, Employee, ValidationResult

logger = logging.getLogger("chain_payroll.resolver")

_LABEL_RE = re.compile(r"[a-z0-9-]+")


# ---------------------------------------------------------------------------
# Classification (pure, no network)
# ---------------------------------------------------------------------------


def is_address_literal(value: str) -> bool:
    """A ``0x``-prefixed, 40-hex-digit address with a valid (or no) checksum."""
    return value.startswith("0x") and Web3.is_address(value)


def looks_like_domain(value: str) -> bool:
    """At least one dot, splitting into two or more non-empty labels."""
    if "." not in value:
        return False
    return sum(1 for part in value.split(".") if part) >= 2


def validate_domain_name(name: str) -> str:
    """Return the normalized (trimmed, lower-cased) form of an ENS name.

    Raises
    ------
    ValidationError
        Empty input, leading/trailing dot, consecutive dots, or a label with
        characters outside ``a-z``, ``0-9`` and ``-``.
    """
    normalized = name.strip().lower()
    if not normalized:
        raise ValidationError("Empty domain name")
    if normalized.startswith(".") or normalized.endswith("."):
        raise ValidationError(f"Domain name '{name}' starts or ends with a dot")
    if ".." in normalized:
        raise ValidationError(f"Domain name '{name}' contains consecutive dots")
    labels = normalized.split(".")
    if len(labels) < 2:
        raise ValidationError(f"Domain name '{name}' needs at least two labels")
    for label in labels:
        if not label:
            raise ValidationError(f"Domain name '{name}' has an empty label")
        if not _LABEL_RE.fullmatch(label):
            raise ValidationError(
                f"Domain name '{name}' has invalid characters in label '{label}' "
                "(allowed: a-z, 0-9, '-')"
            )
    return normalized


def classify(value: str) -> AddressKind:
    """Classify an identifier. Total: every string gets exactly one kind."""
    trimmed = value.strip() if isinstance(value, str) else ""
    if not trimmed:
        return AddressKind.INVALID
    if is_address_literal(trimmed):
        return AddressKind.ADDRESS
    if looks_like_domain(trimmed):
        try:
            validate_domain_name(trimmed)
        except ValidationError:
            return AddressKind.INVALID
        return AddressKind.DOMAIN_NAME
    return AddressKind.INVALID


def _is_zero(address: str | None) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


def namehash(name: str) -> bytes:
    """EIP-137 namehash of an already-normalized name."""
    node = b"\x00" * 32
    if name:
        for label in reversed(name.split(".")):
            node = Web3.keccak(node + Web3.keccak(text=label))
    return bytes(node)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class EnsResolver:
    """Resolve ENS names through a read-only web3 client.

    The client performs no writes, so one resolver can be shared by any
    number of concurrent lookups.
    """

    def __init__(self, w3: Web3, registry_address: str = ENS_REGISTRY_ADDRESS) -> None:
        self.w3 = w3
        self.registry = w3.eth.contract(
            address=Web3.to_checksum_address(registry_address), abi=ENS_REGISTRY_ABI
        )

    def _lookup_resolver(self, name: str, node: bytes) -> str:
        try:
            return self.registry.functions.resolver(node).call()
        except (Web3Exception, OSError, ValueError) as exc:
            raise ResolutionError(
                f"ENS registry lookup failed for '{name}': {error_text(exc)}", name=name
            ) from exc

    def _lookup_addr(self, name: str, resolver_address: str, node: bytes) -> str:
        resolver = self.w3.eth.contract(address=resolver_address, abi=ENS_RESOLVER_ABI)
        try:
            return resolver.functions.addr(node).call()
        except (Web3Exception, OSError, ValueError) as exc:
            raise ResolutionError(
                f"ENS resolver {resolver_address} lookup failed for "
                f"'{name}': {error_text(exc)}",
                name=name,
            ) from exc

    def resolve(self, name: str) -> str | None:
        """Resolve *name* to a checksummed address, or ``None`` if unset.

        Raises
        ------
        ValidationError
            The name is malformed. No network call was made.
        ResolutionError
            A lookup failed at the transport layer or reverted.
        """
        normalized = validate_domain_name(name)
        node = namehash(normalized)

        resolver_address = self._lookup_resolver(normalized, node)
        if _is_zero(resolver_address):
            logger.debug(f"No resolver set for {normalized}")
            return None

        address = self._lookup_addr(normalized, resolver_address, node)
        if _is_zero(address):
            logger.debug(f"Resolver {resolver_address} has no address for {normalized}")
            return None
        return Web3.to_checksum_address(address)

    def validate_and_resolve(self, value: str) -> ValidationResult:
        """Validate an address or ENS name, resolving the latter.

        Malformed input and unregistered names come back as invalid results.
        :class:`ResolutionError` is raised, not folded into the result.
        """
        if not value or not value.strip():
            return ValidationResult(is_valid=False, error="Empty input")
        trimmed = value.strip()

        if is_address_literal(trimmed):
            return ValidationResult(is_valid=True, address=trimmed)

        if not looks_like_domain(trimmed):
            return ValidationResult(is_valid=False, error="Invalid address or ENS domain")

        try:
            address = self.resolve(trimmed)
        except ValidationError as exc:
            return ValidationResult(is_valid=False, is_domain_name=True, error=str(exc))
        if address is None:
            return ValidationResult(
                is_valid=False,
                is_domain_name=True,
                error="ENS domain not found or not resolvable",
            )
        return ValidationResult(is_valid=True, address=address, is_domain_name=True)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def _resolve_isolated(self, pool: ThreadPoolExecutor, name: str) -> str | None:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(pool, self.resolve, name)
        except Exception as exc:
            logger.warning(f"Failed to resolve {name}: {error_text(exc)}")
            return None

    async def resolve_all(self, names: Iterable[str]) -> dict[str, str | None]:
        """Resolve every distinct name concurrently.

        Each name gets its own worker thread, so the whole batch is in flight
        at once. A name that fails to resolve maps to ``None``; it never
        cancels or fails the lookups of the other names.
        """
        unique = list(dict.fromkeys(names))
        if not unique:
            return {}
        with ThreadPoolExecutor(max_workers=len(unique), thread_name_prefix="ens") as pool:
            results = await asyncio.gather(*(self._resolve_isolated(pool, n) for n in unique))
        return dict(zip(unique, results))

    async def resolve_employees(self, employees: list[Employee]) -> list[Employee]:
        """Replace ENS names in employee wallets with resolved addresses.

        Raises :class:`ValidationError` listing every wallet that is neither
        an address nor a resolvable name.
        """
        names = [e.wallet_address for e in employees if classify(e.wallet_address) is AddressKind.DOMAIN_NAME]
        resolved = await self.resolve_all(names)

        out: list[Employee] = []
        problems: list[str] = []
        for index, employee in enumerate(employees):
            wallet = employee.wallet_address
            kind = classify(wallet)
            if kind is AddressKind.ADDRESS:
                out.append(employee)
            elif kind is AddressKind.DOMAIN_NAME and resolved.get(wallet):
                logger.info(f"Resolved {wallet} -> {resolved[wallet]}")
                out.append(employee.model_copy(update={"wallet_address": resolved[wallet]}))
            else:
                problems.append(f"#{index} {employee.name or 'unnamed'}: {wallet!r}")
        if problems:
            raise ValidationError(
                "Unresolved wallet addresses: " + "; ".join(problems),
                field="employees",
            )
        return out
