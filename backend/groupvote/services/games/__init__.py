"""Group-consensus elimination engine.

This package contains the domain logic shared by the tournament-style
games: group formation, the vote ledger, round resolution, tournament
progression and game status supervision. HTTP routes, socket handlers
and timers import it, keeping transport concerns separated from the
rules themselves.
"""
