"""Typed errors raised by the payroll chain layer.

Every error carries a machine-readable ``code`` so callers (CLI, API routes)
can branch on the kind of failure instead of matching message text.

    PayrollChainError
    +-- ConfigurationError        missing/malformed endpoint, key, placeholder
    +-- ConnectivityError         liveness probe or transport failure
    +-- ValidationError           request or address/domain malformed
    +-- ResolutionError           ENS lookup failed (NOT "domain not found")
    +-- OrchestrationError        a creation/add-employee step failed
        +-- ConfirmationTimeoutError   confirmation wait exceeded its bound

"Domain not found" is not an error: :meth:`EnsResolver.resolve` returns
``None`` for it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from chain_payroll.chain.revert import FailureKind


class PayrollChainError(Exception):
    """Base class for every error raised by ``chain_payroll``."""

    code: str = "PAYROLL_CHAIN_ERROR"


class ConfigurationError(PayrollChainError):
    """Configuration is missing or malformed. Raised before any network call."""

    code = "CONFIGURATION"


class ConnectivityError(PayrollChainError):
    """The RPC endpoint could not be reached or returned garbage.

    ``rpc_url`` is always the masked form of the endpoint.
    """

    code = "CONNECTIVITY"

    def __init__(self, message: str, rpc_url: str = "") -> None:
        super().__init__(message)
        self.rpc_url = rpc_url


class ValidationError(PayrollChainError):
    """Input rejected before touching the chain."""

    code = "VALIDATION"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ResolutionError(PayrollChainError):
    """An ENS lookup hit a transport error or an unexpected revert."""

    code = "RESOLUTION"

    def __init__(self, message: str, name: str = "") -> None:
        super().__init__(message)
        self.name = name


class OrchestrationError(PayrollChainError):
    """A step of the payroll transaction sequence failed.

    Carries what already happened on-chain so the caller can tell a clean
    failure from a partial one. Nothing committed on-chain is rolled back.
    """

    code = "ORCHESTRATION"
    ambiguous = False

    def __init__(
        self,
        message: str,
        *,
        step: str,
        payroll_id: Optional[int] = None,
        employee_index: Optional[int] = None,
        employee_wallet: Optional[str] = None,
        tx_hash: Optional[str] = None,
        completed_employees: int = 0,
        kind: Optional[FailureKind] = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.payroll_id = payroll_id
        self.employee_index = employee_index
        self.employee_wallet = employee_wallet
        self.tx_hash = tx_hash
        self.completed_employees = completed_employees
        self.kind = kind

    @property
    def partially_applied(self) -> bool:
        """True when the payroll already exists on-chain."""
        return self.payroll_id is not None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": str(self),
            "step": self.step,
            "payroll_id": self.payroll_id,
            "employee_index": self.employee_index,
            "employee_wallet": self.employee_wallet,
            "tx_hash": self.tx_hash,
            "completed_employees": self.completed_employees,
            "kind": self.kind.value if self.kind is not None else None,
            "ambiguous": self.ambiguous,
        }


class ConfirmationTimeoutError(OrchestrationError):
    """No receipt arrived within the confirmation bound.

    The outcome is unknown: the transaction may still be mined later.
    """

    code = "CONFIRMATION_TIMEOUT"
    ambiguous = True
