"""Minimal ABIs for the contracts this package talks to.

Only the entries actually called are listed. A full deployment artifact
(see :func:`chain_payroll.chain.client.load_deployment`) takes precedence
over :data:`PAYROLL_ABI` when one is configured.
"""

from __future__ import annotations

# ENS registry, same address on mainnet and the public testnets.
ENS_REGISTRY_ADDRESS = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PAYROLL_ABI: list[dict] = [
    {
        "type": "function",
        "name": "createPayroll",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "paymentDay", "type": "uint256"},
            {"name": "duration", "type": "uint256"},
            {"name": "expectedTotalAmount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "addEmployee",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "payrollId", "type": "uint256"},
            {"name": "employee", "type": "address"},
            {"name": "monthlyAmount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "payrollCounter",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "PayrollCreated",
        "anonymous": False,
        "inputs": [
            {"name": "payrollId", "type": "uint256", "indexed": True},
            {"name": "employer", "type": "address", "indexed": True},
            {"name": "paymentDay", "type": "uint256", "indexed": False},
            {"name": "duration", "type": "uint256", "indexed": False},
        ],
    },
]

ENS_REGISTRY_ABI: list[dict] = [
    {
        "type": "function",
        "name": "resolver",
        "stateMutability": "view",
        "inputs": [{"name": "node", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]

ENS_RESOLVER_ABI: list[dict] = [
    {
        "type": "function",
        "name": "addr",
        "stateMutability": "view",
        "inputs": [{"name": "node", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]
