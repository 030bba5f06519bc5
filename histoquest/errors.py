"""
HistoQuest - Errors
===================

CONCEPT: Fatal vs Recoverable
-----------------------------
ConfigError and InvalidTransition are programming errors and are raised.
EmptyPoolWarning and PersistenceFailure are recoverable: the selector keeps
going with fewer items, and a failed save never hides the session summary.
"""


class HistoQuestError(Exception):
    """Base class for every error raised by the engine."""


class ConfigError(HistoQuestError, ValueError):
    """Malformed phase plan or scoring configuration. Aborts start()."""


class InvalidTransition(HistoQuestError, RuntimeError):
    """A transition was requested from a state that does not allow it."""


class PersistenceFailure(HistoQuestError):
    """The score store could not save or fetch records."""


class EmptyPoolWarning(UserWarning):
    """Fewer content items were available than the phase plan asked for."""
