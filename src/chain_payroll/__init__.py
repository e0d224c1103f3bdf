"""On-chain payroll execution with ENS-aware payee resolution.

Resolves employee identifiers (addresses or ENS names), then drives the
``createPayroll`` / ``addEmployee`` transaction sequence against a deployed
Payroll contract, one confirmed transaction at a time.
"""

__version__ = "0.1.0"
