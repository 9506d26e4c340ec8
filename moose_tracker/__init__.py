"""
Rusty Moose stats tracker.

Scrapes per-player stats from the moose.gg dashboard and keeps a per-server cache
that survives roster edits.
"""

__version__ = "0.3.0"
