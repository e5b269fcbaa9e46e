"""General ledger services: chart of accounts, journal entries, posting."""
