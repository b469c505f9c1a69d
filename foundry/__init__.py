"""Foundry: layout-driven scaffolding for Go web services."""

__version__ = "0.3.0"
