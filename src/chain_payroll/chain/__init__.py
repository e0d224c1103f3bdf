"""Web3 plumbing: chains, clients, the Payroll contract wrapper, units."""
