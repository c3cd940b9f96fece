"""Out-of-band notification hooks (registration confirmations, reports)."""
