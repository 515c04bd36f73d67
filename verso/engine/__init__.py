"""Verso Engine — errors, configuration, logging, caching, runtime wiring."""
