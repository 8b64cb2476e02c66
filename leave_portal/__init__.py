"""Leave Portal — dual-tier leave approvals, balance ledger and permission engine."""
