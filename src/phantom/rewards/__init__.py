"""XP ledger, levels, achievements, daily coins, missions and prizes."""
