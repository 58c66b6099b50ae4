"""Combat error taxonomy.

Nothing here is fatal to the host application: the session catches what it
can and degrades to ending the encounter.
"""

from __future__ import annotations


class CombatError(Exception):
    """Base class for combat engine errors."""


class MissingPrerequisiteError(CombatError):
    """Rating or question catalog unavailable when starting an encounter."""


class EngagementError(CombatError):
    """The target cannot be bound to a session."""


class InvalidAnswerError(CombatError, ValueError):
    """Answer index outside 0..3."""
