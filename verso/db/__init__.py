"""Verso persistence — declarative base, engine registry, session scope, tables."""
