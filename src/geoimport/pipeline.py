"""Chunked KML/KMZ parser.

Turns one uploaded file (name + bytes) into a LayerGroup without holding the
event loop for more than one batch at a time. Every loop over features or
coordinates runs in fixed-size batches with an `await` between them, and a
CancellationToken is checked at every such point.

Expected failures (bad markup, empty documents, KMZ without KML,
cancellation) come back as ParseResult.error; anything else propagates.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import IntEnum
from pathlib import PurePath
from typing import Awaitable, Callable, Iterable, Iterator, Optional

from loguru import logger

from geoimport.errors import (
    GeoImportError,
    NoFeaturesError,
    ParseCancelledError,
    ParseError,
    ParseTimeoutError,
    UnsupportedFileTypeError,
)
from geoimport.layers.assembler import build_layer_group, build_layers, group_by_type
from geoimport.layers.bounds import BoundsAccumulator, iter_positions
from geoimport.layers.layer import GeometryFeature, LayerGroup
from geoimport.layers.parsers.kml import find_placemarks, normalize_placemarks, read_schemas
from geoimport.layers.parsers.kmz import extract_inner_document

DEFAULT_BATCH_SIZE = 100
DEFAULT_COORDINATE_BATCH_SIZE = 5000
FEED_CHUNK_BYTES = 1024 * 1024

SUPPORTED_EXTENSIONS = (".kml", ".kmz")

ProgressCallback = Callable[[int], None]


class ProgressStage(IntEnum):
    """Per-file progress percentages reported while a file is processed."""

    VALIDATION = 5
    PARSING_START = 15
    PARSING_CONTENT = 40
    PROCESSING_GEOMETRIES = 70
    CALCULATING_BOUNDS = 85
    FINALIZING = 95
    COMPLETE = 100


class CancellationToken:
    """Cooperative cancellation flag with an optional wall-clock budget.

    The budget starts counting when start() is called, which the parser does
    as it begins work, so time spent waiting in a queue is not charged.
    """

    def __init__(self, time_budget: float | None = None) -> None:
        self._cancelled = False
        self._time_budget = time_budget
        self._deadline: float | None = None

    def start(self) -> None:
        """Start the budget clock; later calls keep the first deadline."""
        if self._time_budget is not None and self._deadline is None:
            self._deadline = time.monotonic() + self._time_budget

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() > self._deadline

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ParseCancelledError("Operation cancelled")
        if self.expired:
            raise ParseTimeoutError("Parse time budget exceeded")


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one file: a LayerGroup or an error value."""

    file_name: str
    layer_group: Optional[LayerGroup] = None
    error: Optional[GeoImportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.layer_group is not None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, ParseCancelledError)


def iter_batches(items: Iterable, size: int) -> Iterator[list]:
    """Split any iterable into lists of at most `size` items."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    iterator = iter(items)
    while True:
        batch = list(itertools.islice(iterator, size))
        if not batch:
            return
        yield batch


async def next_tick() -> None:
    """Hand control back to the event loop for one iteration."""
    await asyncio.sleep(0)


class ChunkedParser:
    """Batch-wise KML/KMZ parser.

    Args:
        batch_size: Placemarks / features handled between two yields.
        coordinate_batch_size: Positions folded into bounds between yields.
        yield_control: Awaitable factory called at every yield point.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        coordinate_batch_size: int = DEFAULT_COORDINATE_BATCH_SIZE,
        yield_control: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        if batch_size < 1 or coordinate_batch_size < 1:
            raise ValueError("batch sizes must be >= 1")
        self.batch_size = batch_size
        self.coordinate_batch_size = coordinate_batch_size
        self._yield = yield_control or next_tick

    async def parse(
        self,
        file_name: str,
        data: bytes,
        token: CancellationToken | None = None,
        *,
        color_offset: int = 0,
        on_progress: ProgressCallback | None = None,
    ) -> ParseResult:
        """Parse one file, returning errors as values."""
        token = token or CancellationToken()
        token.start()
        try:
            group = await self._parse(file_name, data, token, color_offset, on_progress)
        except ParseCancelledError as e:
            logger.warning(f"Parse of {file_name} stopped: {e.message}")
            return ParseResult(file_name, error=e)
        except GeoImportError as e:
            logger.warning(f"Failed to parse {file_name}: {e.message}")
            return ParseResult(file_name, error=e)

        logger.info(
            f"Parsed {file_name}: {len(group.layers)} layers, "
            f"{group.feature_count} features"
        )
        return ParseResult(file_name, layer_group=group)

    async def _checkpoint(self, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        await self._yield()
        token.raise_if_cancelled()

    async def _parse(
        self,
        file_name: str,
        data: bytes,
        token: CancellationToken,
        color_offset: int,
        on_progress: ProgressCallback | None,
    ) -> LayerGroup:
        def report(stage: ProgressStage) -> None:
            if on_progress is not None:
                on_progress(int(stage))

        token.raise_if_cancelled()
        report(ProgressStage.PARSING_START)

        extension = PurePath(file_name).suffix.lower()
        if extension == ".kmz":
            data = extract_inner_document(data)
            await self._checkpoint(token)
        elif extension != ".kml":
            raise UnsupportedFileTypeError(f"Unsupported file format: {extension or file_name}")

        root = await self._read_document(data, token)
        report(ProgressStage.PARSING_CONTENT)

        features = await self._normalize(root, token)
        if not features:
            raise NoFeaturesError("No geometric features found in KML file")
        report(ProgressStage.PROCESSING_GEOMETRIES)

        grouped: dict[str, list[GeometryFeature]] = {}
        for batch in iter_batches(features, self.batch_size):
            group_by_type(batch, grouped)
            await self._checkpoint(token)
        report(ProgressStage.CALCULATING_BOUNDS)

        bounds_by_type = {}
        for geom_type, geometries in grouped.items():
            bounds_by_type[geom_type] = await self._bounds(geometries, token)
        report(ProgressStage.FINALIZING)

        token.raise_if_cancelled()
        layers = build_layers(grouped, bounds_by_type, color_offset=color_offset)
        return build_layer_group(file_name, layers)

    async def _read_document(self, data: bytes, token: CancellationToken) -> ET.Element:
        """Feed the XML parser in fixed-size byte chunks."""
        parser = ET.XMLParser()
        try:
            for offset in range(0, len(data), FEED_CHUNK_BYTES):
                parser.feed(data[offset:offset + FEED_CHUNK_BYTES])
                await self._checkpoint(token)
            return parser.close()
        except ET.ParseError as e:
            raise ParseError(f"Invalid KML format: {e}") from e

    async def _normalize(
        self, root: ET.Element, token: CancellationToken
    ) -> list[GeometryFeature]:
        schemas = read_schemas(root)
        placemarks = find_placemarks(root)
        await self._checkpoint(token)

        features: list[GeometryFeature] = []
        for batch in iter_batches(placemarks, self.batch_size):
            token.raise_if_cancelled()
            features.extend(normalize_placemarks(batch, schemas))
            logger.debug(f"Normalized {len(features)} features from {len(placemarks)} placemarks")
            await self._checkpoint(token)
        return features

    async def _bounds(self, geometries: list[GeometryFeature], token: CancellationToken):
        acc = BoundsAccumulator()
        positions = (p for g in geometries for p in iter_positions(g.coordinates))
        for batch in iter_batches(positions, self.coordinate_batch_size):
            token.raise_if_cancelled()
            for lat, lng in batch:
                acc.add(lat, lng)
            await self._checkpoint(token)
        return acc.result()


async def parse_archive_or_document(
    file_name: str,
    data: bytes,
    token: CancellationToken | None = None,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    color_offset: int = 0,
    on_progress: ProgressCallback | None = None,
) -> ParseResult:
    """Parse a .kml or .kmz file into a LayerGroup result."""
    parser = ChunkedParser(batch_size=batch_size)
    return await parser.parse(
        file_name, data, token, color_offset=color_offset, on_progress=on_progress
    )
