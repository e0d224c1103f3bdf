"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from decimal import Decimal

import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from chain_payroll.models import Employee, PayrollRequest  # noqa: E402

# Hardhat's well-known account #0. Never holds real funds.
HARDHAT_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
HARDHAT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

EMPLOYER = "0x" + "11" * 20
WALLET_A = "0x" + "ab" * 20
WALLET_B = "0x" + "de" * 20


class FakePayrollChain:
    """In-memory stand-in for PayrollContract that records every call in order."""

    def __init__(
        self,
        *,
        event_id=7,
        counter=8,
        create_status=1,
        add_status=None,
        fail_submit_add_at=None,
        timeout_at=None,
        counter_error=None,
    ):
        self.event_id = event_id
        self.counter = counter
        self.create_status = create_status
        self.add_status = add_status or {}
        self.fail_submit_add_at = fail_submit_add_at
        self.timeout_at = timeout_at
        self.counter_error = counter_error
        self.calls = []
        self.counter_reads = 0
        self._adds = 0

    def create_payroll(self, payment_day, duration, expected_total_wei):
        self.calls.append(("create_payroll", (payment_day, duration, expected_total_wei)))
        return "0xcreate"

    def add_employee(self, payroll_id, wallet_address, monthly_amount_wei):
        index = self._adds
        if self.fail_submit_add_at == index:
            raise ValueError("insufficient funds for gas * price + value")
        self._adds += 1
        self.calls.append(("add_employee", (payroll_id, wallet_address, monthly_amount_wei)))
        return f"0xadd{index}"

    def wait_for_receipt(self, tx_hash):
        from web3.exceptions import TimeExhausted

        self.calls.append(("wait", tx_hash))
        if self.timeout_at == tx_hash:
            raise TimeExhausted(f"{tx_hash} not in chain after 120 seconds")
        if tx_hash == "0xcreate":
            return {"status": self.create_status, "logs": []}
        index = int(tx_hash[len("0xadd"):])
        return {"status": self.add_status.get(index, 1), "logs": []}

    def payroll_created_id(self, receipt):
        return self.event_id

    def payroll_counter(self):
        self.counter_reads += 1
        if self.counter_error is not None:
            raise self.counter_error
        return self.counter


@pytest.fixture
def fake_chain():
    return FakePayrollChain()


@pytest.fixture
def payroll_request():
    return PayrollRequest(
        payment_day=15,
        duration=12,
        expected_total_amount="10.0",
        employer_address=EMPLOYER,
        employees=[
            Employee(name="Bob", wallet_address=WALLET_A, amount=Decimal("1.5")),
            Employee(name="Alice", email="alice@example.com", wallet_address=WALLET_B, amount=Decimal("2.0")),
        ],
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real RPC settings from leaking into tests."""
    for var in (
        "RPC_URL",
        "NEXT_PUBLIC_RPC_URL",
        "PRIVATE_KEY",
        "ENS_RPC_URL",
        "PAYROLL_CHAIN",
        "PAYROLL_CONTRACT_ADDRESS",
        "PAYROLL_DEPLOYMENT_FILE",
        "CHAIN_PAYROLL_CONFIG",
        "PAYROLL_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
