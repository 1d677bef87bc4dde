"""Rental session lifecycle."""

from phonepool.sessions.tracker import DEFAULT_SESSION_MINUTES, SessionTracker

__all__ = ["DEFAULT_SESSION_MINUTES", "SessionTracker"]
