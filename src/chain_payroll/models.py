"""Pydantic models for payroll requests, results and address validation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AddressKind(str, Enum):
    ADDRESS = "address"
    DOMAIN_NAME = "domain_name"
    INVALID = "invalid"


class PayrollIdSource(str, Enum):
    EVENT = "event"
    COUNTER_FALLBACK = "counter_fallback"


# ---------------------------------------------------------------------------
# Request / result models
# ---------------------------------------------------------------------------

class Employee(BaseModel):
    """One payee. ``email`` is informational and never sent on-chain."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = ""
    email: Optional[str] = None
    wallet_address: str = Field(alias="walletAddress")
    amount: Decimal  # per period, in ETH

    @field_validator("amount", mode="before")
    @classmethod
    def _float_via_str(cls, value: object) -> object:
        # 1.5 must become Decimal("1.5"), not its binary expansion
        if isinstance(value, float):
            return str(value)
        return value

    @field_validator("wallet_address", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class PayrollRequest(BaseModel):
    """A payroll to create on-chain.

    Bounds (``payment_day`` 1-31, ``duration`` 1-60, non-empty employees) are
    checked by :meth:`PayrollOrchestrator.validate` so that a bad request
    surfaces as :class:`~chain_payroll.errors.ValidationError` rather than a
    pydantic error from deep inside the chain layer.
    """

    model_config = ConfigDict(populate_by_name=True)

    payment_day: int = Field(alias="paymentDay")
    duration: int
    expected_total_amount: str = Field(alias="expectedTotalAmount")
    employer_address: str = Field(default="", alias="employerAddress")
    employees: list[Employee] = Field(default_factory=list)

    @field_validator("expected_total_amount", mode="before")
    @classmethod
    def _amount_as_str(cls, value: object) -> object:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value


class PayrollResult(BaseModel):
    """Outcome of a successful orchestration run."""

    model_config = ConfigDict(frozen=True)

    tx_hash: str
    payroll_id: int = Field(ge=0)
    payroll_id_source: PayrollIdSource = PayrollIdSource.EVENT
    employee_tx_hashes: tuple[str, ...] = ()

    @property
    def used_counter_fallback(self) -> bool:
        return self.payroll_id_source is PayrollIdSource.COUNTER_FALLBACK


class ValidationResult(BaseModel):
    """Per-input outcome of address validation and ENS resolution."""

    is_valid: bool
    address: Optional[str] = None
    is_domain_name: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Payroll id extraction outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EventFound:
    """The id came from the ``PayrollCreated`` event of the creation receipt."""

    payroll_id: int
    source = PayrollIdSource.EVENT


@dataclass(frozen=True)
class FallbackUsed:
    """The id was derived as ``payrollCounter() - 1``.

    Only correct if no other creation was mined between ours and the counter
    read; under concurrent creators this can point at someone else's payroll.
    """

    payroll_id: int
    counter: int
    source = PayrollIdSource.COUNTER_FALLBACK


PayrollIdOutcome = Union[EventFound, FallbackUsed]
