"""
Tests for address classification, ENS resolution and batch resolution.
"""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from chain_payroll.chain.abi import ENS_REGISTRY_ABI, ZERO_ADDRESS
from chain_payroll.errors import ResolutionError, ValidationError
from chain_payroll.models import AddressKind, Employee
from chain_payroll.resolver import (
    EnsResolver,
    classify,
    namehash,
    validate_domain_name,
)

from conftest import WALLET_A

RESOLVER_CONTRACT = "0x4976fb03C32e5B8cfe2b6cCB31c09Ba78EBaBa41"
ALICE = "0x" + "de" * 20
CAROL = "0x" + "ca" * 20


def _call(value):
    """A contract function object whose .call() returns or raises *value*."""
    fn = MagicMock()
    if isinstance(value, Exception):
        fn.call.side_effect = value
    else:
        fn.call.return_value = value
    return fn


def _blocking_call(barrier, value):
    """A contract function object whose .call() waits on *barrier* first."""

    def call():
        barrier.wait()
        return value

    fn = MagicMock()
    fn.call.side_effect = call
    return fn


def make_w3(resolvers=None, addresses=None):
    """Fake web3 client backed by {name: value} maps for both ENS hops.

    Unlisted names resolve to the zero address.
    """
    by_node_resolver = {namehash(k): v for k, v in (resolvers or {}).items()}
    by_node_addr = {namehash(k): v for k, v in (addresses or {}).items()}

    registry = MagicMock()
    registry.functions.resolver.side_effect = lambda node: _call(by_node_resolver.get(node, ZERO_ADDRESS))
    resolver = MagicMock()
    resolver.functions.addr.side_effect = lambda node: _call(by_node_addr.get(node, ZERO_ADDRESS))

    w3 = MagicMock()
    w3.eth.contract.side_effect = lambda address, abi: registry if abi is ENS_REGISTRY_ABI else resolver
    w3.registry = registry
    w3.resolver = resolver
    return w3


class TestClassify:
    """classify is total and network-free."""

    @pytest.mark.parametrize(
        "value, kind",
        [
            (WALLET_A, AddressKind.ADDRESS),
            ("0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045", AddressKind.ADDRESS),
            ("  0xd8da6bf26964af9d7eed9e03e53415d37aa96045 ", AddressKind.ADDRESS),
            ("alice.eth", AddressKind.DOMAIN_NAME),
            ("Alice.ETH", AddressKind.DOMAIN_NAME),
            ("pay.my-company.eth", AddressKind.DOMAIN_NAME),
            ("", AddressKind.INVALID),
            ("   ", AddressKind.INVALID),
            ("alice", AddressKind.INVALID),
            ("eth.", AddressKind.INVALID),
            (".eth", AddressKind.INVALID),
            ("a..eth", AddressKind.INVALID),
            ("ali ce.eth", AddressKind.INVALID),
            ("alice_.eth", AddressKind.INVALID),
            ("alice\n.eth", AddressKind.INVALID),
            ("0x1234", AddressKind.INVALID),
            ("d8da6bf26964af9d7eed9e03e53415d37aa96045", AddressKind.INVALID),
            # bad checksum casing
            ("0xd8DA6BF26964aF9D7eEd9e03E53415D37aA96045", AddressKind.INVALID),
        ],
    )
    def test_kinds(self, value, kind):
        assert classify(value) is kind

    def test_non_string_is_invalid(self):
        assert classify(None) is AddressKind.INVALID


class TestValidateDomainName:
    def test_normalizes_case_and_whitespace(self):
        assert validate_domain_name("  Alice.ETH ") == "alice.eth"

    @pytest.mark.parametrize(
        "name, reason",
        [
            ("", "Empty"),
            (".alice.eth", "starts or ends"),
            ("alice.eth.", "starts or ends"),
            ("alice..eth", "consecutive"),
            ("alice", "two labels"),
            ("al!ce.eth", "invalid characters"),
            ("alice\n.eth", "invalid characters"),
        ],
    )
    def test_rejections(self, name, reason):
        with pytest.raises(ValidationError, match=reason):
            validate_domain_name(name)


class TestNamehash:
    """EIP-137 test vectors."""

    def test_empty(self):
        assert namehash("") == b"\x00" * 32

    def test_eth(self):
        assert namehash("eth").hex() == "93cdeb708b7545dc668eb9280176169d1c33cfd8ed6f04690a0bcc88a93fc4ae"

    def test_foo_eth(self):
        assert namehash("foo.eth").hex() == "de9b09fd7c5f901e23a3f19fecc54828e9c848539801e86591bd9801b019f84f"


class TestResolve:
    """Two-hop resolution and its three outcomes."""

    def test_resolves_address(self):
        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT}, {"alice.eth": ALICE})
        assert EnsResolver(w3).resolve("Alice.eth").lower() == ALICE

    def test_returns_checksummed_address(self):
        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT}, {"alice.eth": "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"})
        assert EnsResolver(w3).resolve("alice.eth") == "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"

    def test_unregistered_name_is_not_found(self):
        """Zero resolver means NotFound, not an error."""
        w3 = make_w3()
        assert EnsResolver(w3).resolve("nobody.eth") is None
        w3.resolver.functions.addr.assert_not_called()

    def test_resolver_without_address_is_not_found(self):
        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT})
        assert EnsResolver(w3).resolve("alice.eth") is None
        w3.resolver.functions.addr.assert_called_once()

    def test_malformed_name_makes_no_network_call(self):
        w3 = make_w3()
        with pytest.raises(ValidationError):
            EnsResolver(w3).resolve("alice..eth")
        w3.registry.functions.resolver.assert_not_called()

    def test_registry_transport_error_is_resolution_error(self):
        w3 = make_w3({"alice.eth": ConnectionError("connection refused")})
        with pytest.raises(ResolutionError) as excinfo:
            EnsResolver(w3).resolve("alice.eth")
        assert excinfo.value.name == "alice.eth"

    def test_transport_error_text_is_masked(self):
        error = ConnectionError("Max retries exceeded with url: /v3/s3cr3tk3y (Caused by timeout)")
        w3 = make_w3({"alice.eth": error})
        with pytest.raises(ResolutionError) as excinfo:
            EnsResolver(w3).resolve("alice.eth")
        assert "s3cr3tk3y" not in str(excinfo.value)
        assert "/v3/***" in str(excinfo.value)

    def test_resolver_revert_is_resolution_error(self):
        from web3.exceptions import ContractLogicError

        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT}, {"alice.eth": ContractLogicError("execution reverted")})
        with pytest.raises(ResolutionError):
            EnsResolver(w3).resolve("alice.eth")


class TestValidateAndResolve:
    def test_address_needs_no_network(self):
        w3 = make_w3()
        result = EnsResolver(w3).validate_and_resolve(WALLET_A)
        assert result.is_valid and result.address == WALLET_A and not result.is_domain_name
        w3.registry.functions.resolver.assert_not_called()

    def test_empty_input(self):
        result = EnsResolver(make_w3()).validate_and_resolve("  ")
        assert not result.is_valid
        assert result.error == "Empty input"

    def test_garbage(self):
        result = EnsResolver(make_w3()).validate_and_resolve("hello")
        assert not result.is_valid and not result.is_domain_name
        assert result.error == "Invalid address or ENS domain"

    def test_malformed_domain(self):
        result = EnsResolver(make_w3()).validate_and_resolve("a..eth")
        assert not result.is_valid and result.is_domain_name
        assert "consecutive" in result.error

    def test_not_found(self):
        result = EnsResolver(make_w3()).validate_and_resolve("nobody.eth")
        assert not result.is_valid and result.is_domain_name
        assert result.error == "ENS domain not found or not resolvable"

    def test_found(self):
        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT}, {"alice.eth": ALICE})
        result = EnsResolver(w3).validate_and_resolve("alice.eth")
        assert result.is_valid and result.is_domain_name
        assert result.address.lower() == ALICE

    def test_resolution_error_propagates(self):
        w3 = make_w3({"alice.eth": OSError("timeout")})
        with pytest.raises(ResolutionError):
            EnsResolver(w3).validate_and_resolve("alice.eth")


class TestResolveAll:
    """Batch resolution isolates failures per name."""

    def test_one_failure_does_not_affect_others(self):
        w3 = make_w3(
            {"a.eth": RESOLVER_CONTRACT, "b.eth": ConnectionError("boom"), "c.eth": RESOLVER_CONTRACT},
            {"a.eth": ALICE, "c.eth": CAROL},
        )
        result = asyncio.run(EnsResolver(w3).resolve_all({"a.eth", "b.eth", "c.eth"}))

        assert set(result) == {"a.eth", "b.eth", "c.eth"}
        assert result["a.eth"].lower() == ALICE
        assert result["b.eth"] is None
        assert result["c.eth"].lower() == CAROL

    def test_duplicates_collapse(self):
        w3 = make_w3({"a.eth": RESOLVER_CONTRACT}, {"a.eth": ALICE})
        result = asyncio.run(EnsResolver(w3).resolve_all(["a.eth", "a.eth", "x.eth"]))
        assert list(result) == ["a.eth", "x.eth"]
        assert result["x.eth"] is None

    def test_malformed_name_maps_to_none(self):
        result = asyncio.run(EnsResolver(make_w3()).resolve_all(["bad..eth"]))
        assert result == {"bad..eth": None}

    def test_empty(self):
        assert asyncio.run(EnsResolver(make_w3()).resolve_all([])) == {}

    def test_lookups_are_in_flight_together(self):
        names = ["a.eth", "b.eth", "c.eth"]
        # each registry read blocks until all three are waiting; a sequential
        # batch would break the barrier and resolve nothing
        barrier = threading.Barrier(len(names), timeout=5)

        def registry_read(node):
            return _blocking_call(barrier, RESOLVER_CONTRACT)

        w3 = make_w3(addresses={n: ALICE for n in names})
        w3.registry.functions.resolver.side_effect = registry_read

        result = asyncio.run(EnsResolver(w3).resolve_all(names))

        assert not barrier.broken
        assert all(address and address.lower() == ALICE for address in result.values())

    def test_batch_larger_than_default_executor(self):
        names = [f"user{i}.eth" for i in range(64)]
        barrier = threading.Barrier(len(names), timeout=10)

        def registry_read(node):
            return _blocking_call(barrier, ZERO_ADDRESS)

        w3 = make_w3()
        w3.registry.functions.resolver.side_effect = registry_read

        result = asyncio.run(EnsResolver(w3).resolve_all(names))

        assert not barrier.broken
        assert result == {name: None for name in names}


class TestResolveEmployees:
    def test_replaces_names_and_keeps_addresses(self):
        w3 = make_w3({"alice.eth": RESOLVER_CONTRACT}, {"alice.eth": ALICE})
        employees = [
            Employee(name="Bob", wallet_address=WALLET_A, amount=1),
            Employee(name="Alice", wallet_address="alice.eth", amount=2),
        ]
        out = asyncio.run(EnsResolver(w3).resolve_employees(employees))

        assert out[0] is employees[0]
        assert out[1].wallet_address.lower() == ALICE
        assert out[1].name == "Alice"
        assert employees[1].wallet_address == "alice.eth"

    def test_lists_every_unresolved_wallet(self):
        employees = [
            Employee(name="Ghost", wallet_address="ghost.eth", amount=1),
            Employee(name="Typo", wallet_address="0x123", amount=1),
        ]
        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(EnsResolver(make_w3()).resolve_employees(employees))
        message = str(excinfo.value)
        assert "ghost.eth" in message and "0x123" in message
