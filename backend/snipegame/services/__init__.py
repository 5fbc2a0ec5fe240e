"""Game domain services: ledger, power-ups, purchases, snipes, accusations.

This package contains the engine logic that should be imported by HTTP
routes, socket handlers and CLI commands, keeping transport concerns
separated from core game mechanics.
"""
