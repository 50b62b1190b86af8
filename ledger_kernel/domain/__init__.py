"""Pure domain types for the ledger kernel: clock, roles, workflows, DTOs."""
