"""Cars ledger gateway HTTP app."""
