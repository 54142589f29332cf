"""Infrastructure adapters: database and simulated ledger."""
