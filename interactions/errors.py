"""
interactions/errors.py

Failures raised by the ledger store and reported by the ledger manager.
"""


class LedgerError(Exception):
    """Base class for interaction-ledger failures."""


class Unauthorized(LedgerError):
    """No recruiter context is bound; the operation needs one."""


class LoadError(LedgerError):
    """The ledger store could not be read."""


class AppendError(LedgerError):
    """The ledger store rejected or could not accept a write."""


class InvalidInteraction(AppendError):
    """The interaction was refused before reaching the store."""
