"""
Tests for archive extraction.

Covers filtering, ordering, dense renumbering, progress reporting,
terminal failures and the empty-result case.
"""
import asyncio
import io
import zipfile

import pytest

from conftest import build_zip, make_image_bytes
from stackreview.archive import (
    STAGE_BUILDING,
    ArchiveExtractor,
    ExtractionResult,
    extract_archive,
    format_size_label,
    guess_content_type,
    is_archive_upload,
    is_image_entry,
)
from stackreview.config import ExtractorConfig
from stackreview.errors import ArchiveReadError
from stackreview.ordering import OrderingMethod


def run_extract(blob, **kwargs) -> ExtractionResult:
    return asyncio.run(extract_archive(blob, **kwargs))


# ═══════════════════════════════════════════════════════════════════════════════
# TEST: ORDERING
# ═══════════════════════════════════════════════════════════════════════════════

class TestOrdering:
    """Extraction output is sorted by inferred order and renumbered 1..N."""

    def test_scan_names_are_ordered(self, ordered_scan_zip):
        result = run_extract(ordered_scan_zip)

        assert [img.name for img in result] == ['scan_001.jpg', 'scan_002.jpg', 'scan_003.jpg']
        assert [img.order for img in result] == [1, 2, 3]

    def test_gaps_are_renumbered_densely(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({
            'img_100.png': png,
            'img_7.png': png,
            'img_42.png': png,
        })

        result = run_extract(blob)

        assert [img.name for img in result] == ['img_7.png', 'img_42.png', 'img_100.png']
        assert [img.order for img in result] == [1, 2, 3]
        assert [img.order_key for img in result] == [7, 42, 100]

    def test_duplicate_keys_keep_archive_order(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({
            'b/slice_2.png': png,
            'a/slice_2.png': png,
            'slice_1.png': png,
        })

        result = run_extract(blob)

        assert [img.name for img in result] == ['slice_1.png', 'b/slice_2.png', 'a/slice_2.png']
        assert sorted(img.order for img in result) == [1, 2, 3]

    def test_orders_form_dense_permutation(self):
        png = make_image_bytes((4, 4))
        names = ['x.png', 'img_9.png', 'scan_3.jpg', 'q_77.bmp', 'A.webp', 'a.tiff', '5.jpeg']
        blob = build_zip({name: png for name in names})

        result = run_extract(blob)

        assert len(result) == len(names)
        assert sorted(img.order for img in result) == list(range(1, len(names) + 1))

    def test_unrecognized_names_use_fallback(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({'zeta.png': png, 'alpha.png': png})

        result = run_extract(blob)

        assert [img.name for img in result] == ['alpha.png', 'zeta.png']
        assert all(img.ordering_method == OrderingMethod.FIRST_CHARACTER for img in result)
        assert result.fallback_count == 2


# ═══════════════════════════════════════════════════════════════════════════════
# TEST: FILTERING
# ═══════════════════════════════════════════════════════════════════════════════

class TestFiltering:
    """Only non-directory entries with recognized suffixes are kept."""

    def test_non_images_and_directories_are_skipped(self, ordered_scan_zip):
        result = run_extract(ordered_scan_zip)

        assert len(result) == 3
        assert result.entries_scanned == 5

    def test_suffix_check_is_case_insensitive(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({'IMG_1.PNG': png, 'img_2.JpEg': png, 'img_3.gif': png})

        result = run_extract(blob)

        assert [img.name for img in result] == ['IMG_1.PNG', 'img_2.JpEg']

    @pytest.mark.parametrize("name, expected", [
        ("a.jpg", True), ("a.JPEG", True), ("a.png", True), ("a.bmp", True),
        ("a.tiff", True), ("a.webp", True), ("a.tif", False), ("a.dcm", False),
        ("png", False),
    ])
    def test_is_image_entry(self, name, expected):
        assert is_image_entry(name) is expected

    def test_custom_suffixes(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({'img_1.png': png, 'img_2.tif': png})
        config = ExtractorConfig(image_suffixes=('.TIF',))

        result = run_extract(blob, config=config)

        assert [img.name for img in result] == ['img_2.tif']

    def test_custom_suffixes_use_numeric_stem(self):
        png = make_image_bytes((4, 4))
        blob = build_zip({'10.tif': png, '2.tif': png})

        result = run_extract(blob, config=ExtractorConfig(image_suffixes=('.tif',)))

        assert [img.name for img in result] == ['2.tif', '10.tif']
        assert all(img.ordering_method == OrderingMethod.NUMERIC_STEM for img in result)


# ═══════════════════════════════════════════════════════════════════════════════
# TEST: RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

class TestRecords:
    """Each record carries bytes, size label and content type."""

    def test_bytes_are_preserved(self):
        png = make_image_bytes((6, 5))
        result = run_extract(build_zip({'img_1.png': png}))

        assert result.images[0].data == png
        assert result.images[0].size_bytes == len(png)

    def test_size_label(self):
        assert format_size_label(0) == "0.0 MB"
        assert format_size_label(1024 * 1024) == "1.0 MB"
        assert format_size_label(int(2.5 * 1024 * 1024)) == "2.5 MB"

    @pytest.mark.parametrize("name, expected", [
        ("a.jpg", "image/jpeg"),
        ("a.JPG", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a.png", "image/png"),
        ("dir/a.webp", "image/webp"),
        ("a.tiff", "image/tiff"),
    ])
    def test_content_type(self, name, expected):
        assert guess_content_type(name) == expected


# ═══════════════════════════════════════════════════════════════════════════════
# TEST: EMPTY AND FAILURE
# ═══════════════════════════════════════════════════════════════════════════════

class TestEmptyAndFailure:
    """Zero images is valid; unreadable archives are terminal."""

    def test_zero_images_is_empty_result(self):
        result = run_extract(build_zip({'readme.txt': b"hello", 'dir/': None}))

        assert isinstance(result, ExtractionResult)
        assert result.is_empty
        assert len(result) == 0

    def test_empty_archive(self):
        result = run_extract(build_zip({}))
        assert result.is_empty

    def test_garbage_raises_archive_read_error(self):
        with pytest.raises(ArchiveReadError) as excinfo:
            run_extract(b"this is not a zip file")

        assert str(excinfo.value).startswith("Failed to read archive: ")
        assert excinfo.value.__cause__ is not None

    def test_corrupt_entry_raises_without_partial_result(self):
        png = make_image_bytes((4, 4))
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_STORED) as zf:
            zf.writestr('img_1.png', png)
            zf.writestr('img_2.png', png)
        blob = bytearray(buffer.getvalue())
        # Flip a byte inside the second entry's stored data to break its CRC
        offset = blob.rfind(png)
        blob[offset + 10] ^= 0xFF

        with pytest.raises(ArchiveReadError) as excinfo:
            run_extract(bytes(blob))

        assert "img_2.png" in str(excinfo.value)

    def test_accepts_file_objects(self, ordered_scan_zip):
        result = run_extract(io.BytesIO(ordered_scan_zip))
        assert len(result) == 3


# ═══════════════════════════════════════════════════════════════════════════════
# TEST: PROGRESS AND COOPERATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestProgress:
    """Progress is reported incrementally and the loop is yielded to."""

    def test_progress_is_monotonic_and_completes(self, ordered_scan_zip):
        updates = []
        run_extract(ordered_scan_zip, progress=lambda pct, stage: updates.append((pct, stage)))

        percents = [pct for pct, _ in updates]
        assert percents[0] == 0
        assert percents[-1] == 100
        assert percents == sorted(percents)
        assert len({stage for _, stage in updates}) >= 4

    def test_building_stage_reports_before_each_record(self, ordered_scan_zip):
        updates = []
        run_extract(ordered_scan_zip, progress=lambda pct, stage: updates.append((pct, stage)))

        building = [pct for pct, stage in updates if stage == STAGE_BUILDING]

        assert building == pytest.approx([70, 70, 70 + 25 / 3, 70 + 50 / 3])

    def test_progress_reaches_done_for_empty_result(self):
        updates = []
        run_extract(build_zip({}), progress=lambda pct, stage: updates.append(pct))
        assert updates[-1] == 100

    def test_yields_to_event_loop(self):
        png = make_image_bytes((2, 2))
        blob = build_zip({f'img_{i}.png': png for i in range(20)})
        extractor = ArchiveExtractor(config=ExtractorConfig(yield_every=2))
        ticks = []

        async def ticker():
            while True:
                ticks.append(1)
                await asyncio.sleep(0)

        async def main():
            task = asyncio.ensure_future(ticker())
            try:
                return await extractor.extract(blob)
            finally:
                task.cancel()

        result = asyncio.run(main())

        assert len(result) == 20
        assert len(ticks) > 1

    def test_extract_sync(self, ordered_scan_zip):
        result = ArchiveExtractor().extract_sync(ordered_scan_zip)
        assert [img.order for img in result] == [1, 2, 3]


class TestArchiveUpload:
    @pytest.mark.parametrize("filename, content_type, expected", [
        ("study.zip", None, True),
        ("STUDY.ZIP", None, True),
        ("study.bin", "application/zip", True),
        ("study.tar", None, False),
        ("study.png", "image/png", False),
    ])
    def test_is_archive_upload(self, filename, content_type, expected):
        assert is_archive_upload(filename, content_type) is expected
