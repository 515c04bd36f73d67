"""Verso request layer — action handlers and request schemas."""
