"""Error taxonomy for ingestion and store actions.

These are raised inside the parsers and the reducer, and handed back to
callers as values by parse_archive_or_document() and ImportStore.dispatch().
"""

from __future__ import annotations


class GeoImportError(Exception):
    """Base class for expected, per-file or per-action failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


# -- validation (before any parsing) -----------------------------------------

class FileValidationError(GeoImportError):
    """File rejected by extension or size before parsing."""


class UnsupportedFileTypeError(FileValidationError):
    pass


class FileTooLargeError(FileValidationError):
    pass


# -- parsing -----------------------------------------------------------------

class ParseError(GeoImportError):
    """Malformed markup or container."""


class NoFeaturesError(ParseError):
    """Document parsed but produced no valid features."""


class MissingInnerDocumentError(ParseError):
    """KMZ archive contains no .kml entry."""


class ParseCancelledError(GeoImportError):
    """Cooperative cancellation; the file can be retried."""


class ParseTimeoutError(ParseCancelledError):
    """Wall-clock budget exhausted at a yield point."""


# -- store -------------------------------------------------------------------

class StoreError(GeoImportError):
    """Action precondition failed; state is unchanged."""


class EmptySelectionError(StoreError):
    pass


class NoProjectSelectedError(StoreError):
    pass


class PersistenceError(GeoImportError):
    """Persistence collaborator rejected a call or was unreachable."""
