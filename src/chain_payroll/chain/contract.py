"""Typed wrapper around the deployed Payroll contract.

Signs locally with the bundle's key, tracks the nonce itself, and waits for
receipts with a bounded timeout. It knows nothing about payroll requests;
sequencing lives in :mod:`chain_payroll.orchestrator`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.logs import DISCARD

from chain_payroll.chain.client import ChainClientBundle, Deployment
from chain_payroll.config import ConfirmationConfig

logger = logging.getLogger("chain_payroll.chain.contract")


class PayrollContract:
    """Submit and confirm transactions against one Payroll deployment."""

    def __init__(
        self,
        clients: ChainClientBundle,
        deployment: Deployment,
        confirmation: Optional[ConfirmationConfig] = None,
    ) -> None:
        self.clients = clients
        self.w3 = clients.read
        self.address = deployment.address
        self.contract = self.w3.eth.contract(address=deployment.address, abi=deployment.abi)
        self.confirmation = confirmation or ConfirmationConfig()
        self._nonce: Optional[int] = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _next_nonce(self) -> int:
        if self._nonce is None:
            self._nonce = self.w3.eth.get_transaction_count(self.clients.address, "pending")
        return self._nonce

    def _submit(self, call: Any) -> str:
        """Build, sign, and send a contract call. Returns the tx hash."""
        nonce = self._next_nonce()
        tx = call.build_transaction(
            {
                "from": self.clients.address,
                "nonce": nonce,
                "chainId": self.clients.chain.chain_id,
            }
        )
        signed = self.clients.signer.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        # The node accepted it, so this nonce is spent whatever the outcome.
        self._nonce = nonce + 1
        return Web3.to_hex(tx_hash)

    def create_payroll(self, payment_day: int, duration: int, expected_total_wei: int) -> str:
        return self._submit(
            self.contract.functions.createPayroll(payment_day, duration, expected_total_wei)
        )

    def add_employee(self, payroll_id: int, wallet_address: str, monthly_amount_wei: int) -> str:
        return self._submit(
            self.contract.functions.addEmployee(
                payroll_id, Web3.to_checksum_address(wallet_address), monthly_amount_wei
            )
        )

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    def wait_for_receipt(self, tx_hash: str) -> Any:
        """Block until *tx_hash* is mined and buried ``confirmations`` deep.

        Raises ``web3.exceptions.TimeExhausted`` once ``timeout_seconds`` is
        spent. The receipt is returned whatever its status; the caller decides
        what a revert means.
        """
        cfg = self.confirmation
        deadline = time.monotonic() + cfg.timeout_seconds
        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=cfg.timeout_seconds, poll_latency=cfg.poll_latency
        )
        if cfg.confirmations > 1:
            target = receipt["blockNumber"] + cfg.confirmations - 1
            while self.w3.eth.block_number < target:
                if time.monotonic() >= deadline:
                    raise TimeExhausted(
                        f"Transaction {tx_hash} mined but not {cfg.confirmations} "
                        f"blocks deep after {cfg.timeout_seconds} seconds"
                    )
                time.sleep(cfg.poll_latency)
        return receipt

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def payroll_created_id(self, receipt: Any) -> Optional[int]:
        """Return ``payrollId`` from a ``PayrollCreated`` log, if the receipt has one."""
        try:
            events = self.contract.events.PayrollCreated().process_receipt(receipt, errors=DISCARD)
        except (Web3Exception, AttributeError, KeyError, ValueError) as exc:
            logger.warning(f"Could not decode PayrollCreated from receipt: {exc}")
            return None
        for event in events:
            if event["address"] != self.address:
                continue
            payroll_id = event["args"].get("payrollId")
            if payroll_id is not None:
                return int(payroll_id)
        return None

    def payroll_counter(self) -> int:
        return int(self.contract.functions.payrollCounter().call())
