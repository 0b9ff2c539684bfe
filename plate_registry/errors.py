"""
errors.py — Exceptions raised by the record store and its backends.

Read paths (search, count, lookups) never raise these; they log and return
an empty result.  Write paths (insert, update, delete, clear) raise them so
the caller can tell the user and the write is never lost silently.
"""


class RegistryError(Exception):
    """Base class for every error raised by plate_registry."""


class ValidationFailure(RegistryError):
    """Input is empty where required or is not a plausible plate."""


class DuplicateIdentity(RegistryError):
    """Another record already has the same canonical plate."""

    def __init__(self, plate: str, existing=None):
        self.plate = plate
        self.existing = existing
        shown = existing.plate if existing is not None else plate
        super().__init__(f"Plate {plate!r} is already registered as {shown!r}")


class NotFound(RegistryError):
    """The record targeted by an update or delete does not exist."""

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"No record with id {record_id!r}")


class BackendUnavailable(RegistryError):
    """The remote or embedded tier could not be reached or failed a write."""


class ConstraintViolation(RegistryError):
    """A backend rejected a write on its own uniqueness constraint.

    The record store translates this into DuplicateIdentity.
    """
