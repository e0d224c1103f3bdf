"""Drive a payroll request through its on-chain transaction sequence.

One run is strictly linear::

    validate -> createPayroll -> confirm -> extract payrollId
             -> addEmployee #1 -> confirm -> ... -> addEmployee #N -> confirm

Nothing is retried here. A failure after the payroll exists is reported with
the confirmed payroll id and the failing employee index; employees already
added stay on-chain.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Protocol

from web3.exceptions import TimeExhausted, Web3Exception

from chain_payroll.chain.client import error_text
from chain_payroll.chain.revert import FailureKind, classify_failure
from chain_payroll.chain.units import to_wei
from chain_payroll.errors import (
    ConfirmationTimeoutError,
    OrchestrationError,
    ValidationError,
)
from chain_payroll.models import (
    Employee,
    EventFound,
    FallbackUsed,
    PayrollIdOutcome,
    PayrollRequest,
    PayrollResult,
)
from chain_payroll.resolver import is_address_literal

if TYPE_CHECKING:
    from chain_payroll.config import Settings

logger = logging.getLogger("chain_payroll.orchestrator")

MIN_PAYMENT_DAY, MAX_PAYMENT_DAY = 1, 31
MIN_DURATION, MAX_DURATION = 1, 60

# Errors a contract call can raise on its way to or from the node.
_CHAIN_ERRORS = (Web3Exception, OSError, ValueError)


class PayrollChain(Protocol):
    """What the orchestrator needs from the chain (see ``PayrollContract``)."""

    def create_payroll(self, payment_day: int, duration: int, expected_total_wei: int) -> str: ...

    def add_employee(self, payroll_id: int, wallet_address: str, monthly_amount_wei: int) -> str: ...

    def wait_for_receipt(self, tx_hash: str) -> Any: ...

    def payroll_created_id(self, receipt: Any) -> Optional[int]: ...

    def payroll_counter(self) -> int: ...


def _receipt_ok(receipt: Any) -> bool:
    return receipt is not None and receipt["status"] == 1


class PayrollOrchestrator:
    """Turns a validated :class:`PayrollRequest` into confirmed transactions.

    Parameters
    ----------
    chain:
        The payroll contract client for this run. It owns the signer and its
        nonce, so one orchestrator must not be shared by concurrent runs.
    """

    def __init__(self, chain: PayrollChain) -> None:
        self.chain = chain

    @classmethod
    def from_settings(cls, settings: Settings) -> PayrollOrchestrator:
        """Build the clients and contract wrapper for one run."""
        from chain_payroll.chain.client import build_clients, resolve_deployment
        from chain_payroll.chain.contract import PayrollContract

        clients = build_clients(settings)
        deployment = resolve_deployment(settings, clients.chain)
        logger.info(
            f"Using {settings.contract.name} at {deployment.address} on "
            f"{clients.chain.name} as {clients.address}"
        )
        return cls(PayrollContract(clients, deployment, settings.confirmation))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate(request: PayrollRequest) -> tuple[int, list[int]]:
        """Check bounds and convert amounts. Returns ``(total_wei, amounts_wei)``.

        Raises :class:`ValidationError`; nothing has touched the chain yet.
        """
        if not request.employees:
            raise ValidationError("Empty employee list", field="employees")
        if not request.employer_address or not request.employer_address.strip():
            raise ValidationError("Missing employerAddress", field="employer_address")
        if not MIN_PAYMENT_DAY <= request.payment_day <= MAX_PAYMENT_DAY:
            raise ValidationError(
                f"Invalid payment day (must be {MIN_PAYMENT_DAY}-{MAX_PAYMENT_DAY})",
                field="payment_day",
            )
        if not MIN_DURATION <= request.duration <= MAX_DURATION:
            raise ValidationError(
                f"Invalid duration (must be {MIN_DURATION}-{MAX_DURATION} months)",
                field="duration",
            )

        total_wei = to_wei(request.expected_total_amount)
        amounts_wei: list[int] = []
        for index, employee in enumerate(request.employees):
            if not is_address_literal(employee.wallet_address):
                raise ValidationError(
                    f"Employee {index} ({employee.name or 'unnamed'}) has an "
                    f"unresolved wallet address: {employee.wallet_address!r}",
                    field=f"employees[{index}].wallet_address",
                )
            try:
                amounts_wei.append(to_wei(employee.amount))
            except ValidationError as exc:
                raise ValidationError(
                    f"Employee {index} ({employee.name or 'unnamed'}): {exc}",
                    field=f"employees[{index}].amount",
                ) from exc
        return total_wei, amounts_wei

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _create_payroll(self, request: PayrollRequest, total_wei: int) -> tuple[str, Any]:
        logger.info(
            f"Creating payroll with payment day {request.payment_day}, duration "
            f"{request.duration} months, total amount: {request.expected_total_amount} ETH"
        )
        try:
            tx_hash = self.chain.create_payroll(request.payment_day, request.duration, total_wei)
        except _CHAIN_ERRORS as exc:
            raise OrchestrationError(
                f"Create payroll transaction was rejected: {error_text(exc)}",
                step="create_payroll",
                kind=classify_failure(exc),
            ) from exc
        logger.info(f"Create payroll tx sent: {tx_hash}")

        receipt = self._confirm(tx_hash, step="create_payroll")
        if not _receipt_ok(receipt):
            raise OrchestrationError(
                f"Create payroll transaction {tx_hash} reverted",
                step="create_payroll",
                tx_hash=tx_hash,
                kind=FailureKind.REVERTED,
            )
        logger.info(f"Create payroll tx confirmed: {tx_hash}")
        return tx_hash, receipt

    def _confirm(
        self,
        tx_hash: str,
        *,
        step: str,
        payroll_id: Optional[int] = None,
        employee_index: Optional[int] = None,
        employee: Optional[Employee] = None,
        completed: int = 0,
    ) -> Any:
        try:
            return self.chain.wait_for_receipt(tx_hash)
        except TimeExhausted as exc:
            raise ConfirmationTimeoutError(
                f"Timed out waiting for {tx_hash} ({step}); it may still be mined",
                step=step,
                payroll_id=payroll_id,
                employee_index=employee_index,
                employee_wallet=employee.wallet_address if employee else None,
                tx_hash=tx_hash,
                completed_employees=completed,
                kind=FailureKind.TIMEOUT,
            ) from exc
        except _CHAIN_ERRORS as exc:
            raise OrchestrationError(
                f"Failed waiting for {tx_hash} ({step}): {error_text(exc)}",
                step=step,
                payroll_id=payroll_id,
                employee_index=employee_index,
                employee_wallet=employee.wallet_address if employee else None,
                tx_hash=tx_hash,
                completed_employees=completed,
                kind=classify_failure(exc),
            ) from exc

    def extract_payroll_id(self, receipt: Any, tx_hash: str = "") -> PayrollIdOutcome:
        """Read the new payroll id from the creation receipt.

        Falls back to ``payrollCounter() - 1`` when the receipt has no
        ``PayrollCreated`` event. The fallback assumes nobody else created a
        payroll between our transaction and the read; with concurrent
        employers it can return the wrong id, which is why it is reported
        as :class:`FallbackUsed` rather than passed off as an event result.
        """
        payroll_id = self.chain.payroll_created_id(receipt)
        if payroll_id is not None:
            return EventFound(payroll_id=payroll_id)

        try:
            counter = self.chain.payroll_counter()
        except _CHAIN_ERRORS as exc:
            raise OrchestrationError(
                f"PayrollCreated event missing and payrollCounter() failed: {error_text(exc)}",
                step="extract_payroll_id",
                tx_hash=tx_hash or None,
                kind=classify_failure(exc),
            ) from exc
        if counter < 1:
            raise OrchestrationError(
                f"PayrollCreated event missing and payrollCounter() is {counter}",
                step="extract_payroll_id",
                tx_hash=tx_hash or None,
            )
        logger.warning(
            f"PayrollCreated event not found in {tx_hash}; using payrollCounter() - 1 "
            f"= {counter - 1}. This is wrong if another payroll was created concurrently."
        )
        return FallbackUsed(payroll_id=counter - 1, counter=counter)

    def _add_employees(
        self,
        payroll_id: int,
        employees: list[Employee],
        amounts_wei: list[int],
    ) -> list[str]:
        total = len(employees)
        logger.info(f"Adding {total} employees to payroll {payroll_id}")
        tx_hashes: list[str] = []
        for index, (employee, amount_wei) in enumerate(zip(employees, amounts_wei)):
            logger.info(
                f"Adding employee {index + 1}/{total}: {employee.name} "
                f"({employee.wallet_address}) - {employee.amount} ETH/month"
            )
            try:
                tx_hash = self.chain.add_employee(payroll_id, employee.wallet_address, amount_wei)
            except _CHAIN_ERRORS as exc:
                raise OrchestrationError(
                    f"Add employee {index} ({employee.wallet_address}) to payroll "
                    f"{payroll_id} was rejected: {error_text(exc)}",
                    step="add_employee",
                    payroll_id=payroll_id,
                    employee_index=index,
                    employee_wallet=employee.wallet_address,
                    completed_employees=index,
                    kind=classify_failure(exc),
                ) from exc
            logger.info(f"Add employee tx sent: {tx_hash}")

            receipt = self._confirm(
                tx_hash,
                step="add_employee",
                payroll_id=payroll_id,
                employee_index=index,
                employee=employee,
                completed=index,
            )
            if not _receipt_ok(receipt):
                raise OrchestrationError(
                    f"Add employee {index} ({employee.wallet_address}) to payroll "
                    f"{payroll_id} reverted in {tx_hash}",
                    step="add_employee",
                    payroll_id=payroll_id,
                    employee_index=index,
                    employee_wallet=employee.wallet_address,
                    tx_hash=tx_hash,
                    completed_employees=index,
                    kind=FailureKind.REVERTED,
                )
            logger.info(f"Add employee tx confirmed: {tx_hash}")
            tx_hashes.append(tx_hash)
        return tx_hashes

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def execute(self, request: PayrollRequest) -> PayrollResult:
        """Run the whole sequence and return the creation tx hash and payroll id.

        Raises
        ------
        ValidationError
            The request is out of bounds; no transaction was sent.
        ConfirmationTimeoutError
            A confirmation wait ran out; the transaction may still land.
        OrchestrationError
            Any other step failure, carrying the partial state.
        """
        total_wei, amounts_wei = self.validate(request)

        tx_hash, receipt = self._create_payroll(request, total_wei)
        outcome = self.extract_payroll_id(receipt, tx_hash)
        logger.info(f"Payroll created with ID: {outcome.payroll_id}")

        employee_hashes = self._add_employees(outcome.payroll_id, request.employees, amounts_wei)

        logger.info(
            f"Payroll setup complete! Payroll ID: {outcome.payroll_id}, Transaction: {tx_hash}"
        )
        return PayrollResult(
            tx_hash=tx_hash,
            payroll_id=outcome.payroll_id,
            payroll_id_source=outcome.source,
            employee_tx_hashes=tuple(employee_hashes),
        )


def expected_total(request: PayrollRequest) -> Decimal:
    """Sum of per-period amounts times the number of periods."""
    return sum((e.amount for e in request.employees), Decimal(0)) * request.duration
