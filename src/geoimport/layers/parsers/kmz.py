"""Extract the inner KML document from a KMZ (zip) container."""

from __future__ import annotations

import io
import zipfile
import zlib

from geoimport.errors import MissingInnerDocumentError, ParseError

KML_EXTENSION = ".kml"


def find_inner_document(names: list[str]) -> str | None:
    """First archive entry that is a .kml file (directories excluded)."""
    for name in names:
        if name.endswith("/"):
            continue
        if name.lower().endswith(KML_EXTENSION):
            return name
    return None


def extract_inner_document(data: bytes) -> bytes:
    """Return the raw bytes of the first .kml entry of a KMZ archive.

    Raises:
        ParseError: If the data is not a readable zip archive.
        MissingInnerDocumentError: If the archive has no .kml entry.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            name = find_inner_document(archive.namelist())
            if name is None:
                raise MissingInnerDocumentError("No KML file found in KMZ archive")
            return archive.read(name)
    except (zipfile.BadZipFile, zlib.error) as e:
        raise ParseError(f"Error reading KMZ file: {e}") from e
