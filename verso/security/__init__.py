"""Verso security — collaborator roles per artifact."""
