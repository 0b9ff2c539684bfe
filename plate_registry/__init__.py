"""
plate-registry

Vehicle plate records that can be found however the plate was typed,
stored on a hosted table, a local SQLite file or a local JSON file.
"""

from .errors import (
    BackendUnavailable,
    ConstraintViolation,
    DuplicateIdentity,
    NotFound,
    RegistryError,
    ValidationFailure,
)
from .identity import (
    canonicalize,
    format_with_separator,
    is_plausible_plate,
    same_identity,
    search_variants,
)
from .records import PlateRecord
from .store import RecordStore

__version__ = "0.1.0"

__all__ = [
    "RecordStore",
    "PlateRecord",
    "canonicalize",
    "format_with_separator",
    "search_variants",
    "is_plausible_plate",
    "same_identity",
    "RegistryError",
    "ValidationFailure",
    "DuplicateIdentity",
    "NotFound",
    "BackendUnavailable",
    "ConstraintViolation",
]
