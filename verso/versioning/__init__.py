"""Verso version graph — store, refs, change log, records."""
