# src/stackreview/archive.py
"""
Archive Extraction
==================

Decompresses a ZIP archive of diagnostic images, keeps the image-like
entries and orders them by filename convention.

Pipeline:
1. Open the container (failure → ArchiveReadError, no partial result)
2. Keep non-directory entries ending in a recognized image suffix
3. Read each kept entry and resolve its order key
4. Stable-sort ascending by order key
5. Renumber 1..N as the final sequence order

The final order is always a dense permutation 1..N, whatever numbering
(gaps, duplicates, none at all) the source filenames carried.

Extraction is a coroutine. It reports progress as (percent, stage) and
yields to the event loop every few entries so large archives do not
stall the caller's interaction loop.
"""
from __future__ import annotations

import asyncio
import io
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, List, Optional, Union

from .config import ExtractorConfig
from .errors import ArchiveReadError
from .ordering import OrderingMethod, OrderKey, SequenceOrderResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
ArchiveSource = Union[bytes, bytearray, memoryview, BinaryIO]

# Errors zipfile can surface while opening or inflating entries
_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    NotImplementedError,  # unsupported compression method
    RuntimeError,         # encrypted entry without password
    EOFError,
    OSError,
    ValueError,
)

STAGE_READING = "Reading archive..."
STAGE_IDENTIFYING = "Identifying images..."
STAGE_ORDERING = "Ordering images..."
STAGE_BUILDING = "Building image records..."
STAGE_DONE = "Done"


# ═══════════════════════════════════════════════════════════════════════════════
# DATA MODEL
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ExtractedImage:
    """
    One image pulled out of an archive.

    Transient: owned by the ExtractionResult until handed to a caller.
    """
    name: str
    data: bytes
    order: int                 # Final 1-based sequence order (dense)
    size_label: str            # e.g. "1.3 MB"
    content_type: str          # e.g. "image/jpeg"

    # Provenance of the order
    order_key: int = 0
    ordering_method: Union[OrderingMethod, str] = OrderingMethod.FIRST_CHARACTER

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass
class ExtractionResult:
    """Ordered extraction output. Zero images is a valid (empty) result."""
    images: List[ExtractedImage] = field(default_factory=list)
    entries_scanned: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.images

    @property
    def fallback_count(self) -> int:
        """Images whose order came from the first-character fallback."""
        return sum(1 for img in self.images if img.ordering_method == OrderingMethod.FIRST_CHARACTER)

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[ExtractedImage]:
        return iter(self.images)


@dataclass
class _Candidate:
    name: str
    data: bytes
    key: OrderKey


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def format_size_label(size_bytes: int) -> str:
    """Human-readable size in megabytes with one decimal, e.g. '2.4 MB'."""
    mb = size_bytes / (1024 * 1024)
    return f"{mb:.1f} MB"


def guess_content_type(filename: str) -> str:
    """MIME type from the filename extension ('jpg' maps to image/jpeg)."""
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'jpg'
    if extension == 'jpg':
        extension = 'jpeg'
    return f"image/{extension}"


def is_image_entry(filename: str, suffixes=None) -> bool:
    """True if filename ends with a recognized image suffix (case-insensitive)."""
    if suffixes is None:
        suffixes = ExtractorConfig().image_suffixes
    return filename.lower().endswith(tuple(suffixes))


def is_archive_upload(filename: str, content_type: Optional[str] = None) -> bool:
    """Accept an upload as an archive by MIME type or .zip suffix."""
    if content_type == 'application/zip':
        return True
    return filename.lower().endswith('.zip')


def _open_archive(source: ArchiveSource) -> zipfile.ZipFile:
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))
    try:
        return zipfile.ZipFile(source)
    except _READ_ERRORS as exc:
        raise ArchiveReadError(str(exc) or exc.__class__.__name__) from exc


# ═══════════════════════════════════════════════════════════════════════════════
# EXTRACTOR
# ═══════════════════════════════════════════════════════════════════════════════

class ArchiveExtractor:
    """
    Extracts and orders the images of one archive.

    Stateless between calls; one instance can serve many archives.
    """

    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        resolver: Optional[SequenceOrderResolver] = None,
    ):
        self.config = config or ExtractorConfig()
        self.resolver = resolver or SequenceOrderResolver.for_suffixes(self.config.image_suffixes)

    async def extract(
        self,
        source: ArchiveSource,
        progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """
        Extract and order every recognized image in the archive.

        Args:
            source: Archive bytes or a readable binary file object
            progress: Optional callback(percent, stage) for incremental progress

        Returns:
            ExtractionResult (possibly empty)

        Raises:
            ArchiveReadError: the container could not be read, or the
                configured timeout elapsed
        """
        timeout = self.config.timeout_seconds
        if timeout is None:
            return await self._extract(source, progress)
        try:
            return await asyncio.wait_for(self._extract(source, progress), timeout)
        except asyncio.TimeoutError as exc:
            raise ArchiveReadError(f"extraction timed out after {timeout:g}s") from exc

    def extract_sync(
        self,
        source: ArchiveSource,
        progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """Run extract() to completion on a fresh event loop."""
        return asyncio.run(self.extract(source, progress))

    async def _extract(
        self,
        source: ArchiveSource,
        progress: Optional[ProgressCallback],
    ) -> ExtractionResult:
        def report(percent: float, stage: str) -> None:
            if progress:
                progress(percent, stage)

        report(0, STAGE_READING)
        archive = _open_archive(source)

        with archive:
            infos = archive.infolist()
            logger.info(f"Extracting archive with {len(infos)} entries")

            report(20, STAGE_IDENTIFYING)
            candidates: List[_Candidate] = []

            for idx, info in enumerate(infos, start=1):
                if not info.is_dir() and is_image_entry(info.filename, self.config.image_suffixes):
                    try:
                        data = archive.read(info)
                    except _READ_ERRORS as exc:
                        raise ArchiveReadError(
                            f"{info.filename}: {str(exc) or exc.__class__.__name__}"
                        ) from exc
                    key = self.resolver.resolve_key(info.filename)
                    candidates.append(_Candidate(name=info.filename, data=data, key=key))
                    logger.debug(f"Kept {info.filename} (key={key.value}, method={key.method})")

                if idx % self.config.yield_every == 0:
                    await asyncio.sleep(0)

        report(50, STAGE_ORDERING)
        candidates.sort(key=lambda c: c.key.value)

        fallbacks = sum(1 for c in candidates if c.key.is_fallback)
        if fallbacks:
            logger.warning(
                f"Falling back to first-character ordering for {fallbacks} of "
                f"{len(candidates)} images. Their relative order is a weak guess."
            )

        report(70, STAGE_BUILDING)
        images: List[ExtractedImage] = []
        total = len(candidates)

        for index, candidate in enumerate(candidates):
            images.append(ExtractedImage(
                name=candidate.name,
                data=candidate.data,
                order=index + 1,
                size_label=format_size_label(len(candidate.data)),
                content_type=guess_content_type(candidate.name),
                order_key=candidate.key.value,
                ordering_method=candidate.key.method,
            ))
            report(70 + (index / total) * 25, STAGE_BUILDING)
            if (index + 1) % self.config.yield_every == 0:
                await asyncio.sleep(0)

        report(100, STAGE_DONE)

        if not images:
            logger.info("Archive contained no recognized images")
        else:
            logger.info(f"Extracted {len(images)} images from {len(infos)} entries")

        return ExtractionResult(images=images, entries_scanned=len(infos))


async def extract_archive(
    source: ArchiveSource,
    *,
    config: Optional[ExtractorConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ExtractionResult:
    """Convenience wrapper around ArchiveExtractor.extract()."""
    return await ArchiveExtractor(config=config).extract(source, progress)
