"""
Pytest configuration and fixtures for stack review tests.
"""
import io
import os
import sys
import zipfile
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pytest
from PIL import Image

# Allow running from a checkout without installing the package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


def make_image_bytes(
    size: Tuple[int, int] = (40, 30),
    fmt: str = "PNG",
    mode: str = "RGB",
    color=None,
) -> bytes:
    """
    Encode a small synthetic image.

    A horizontal gradient is used unless a flat color is given, so crops
    and filters produce measurable pixel differences.
    """
    if color is not None:
        img = Image.new(mode, size, color=color)
    else:
        width, height = size
        ramp = np.tile(np.linspace(0, 255, width, dtype=np.uint8), (height, 1))
        if mode == "L":
            img = Image.fromarray(ramp)
        else:
            img = Image.fromarray(np.stack([ramp] * 3, axis=-1)).convert(mode)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def build_zip(entries: Dict[str, Optional[bytes]]) -> bytes:
    """
    Build an in-memory ZIP archive.

    A value of None creates a directory entry (name should end with '/').
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            if data is None:
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, data)
    return buffer.getvalue()


class FakeTimer:
    def __init__(self, scheduler: 'FakeScheduler', due: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """
    Manual clock for autoplay tests.

    call_later() records timers; advance(ms) fires everything that falls
    due, in due order, including timers scheduled while advancing.
    """

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimer] = []
        self.delays: List[float] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self, self.now + delay, callback)
        self.timers.append(timer)
        self.delays.append(delay)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, ms: float) -> None:
        target = self.now + ms / 1000.0
        while True:
            due = [t for t in self.pending if t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target


@pytest.fixture
def png_bytes():
    return make_image_bytes()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def ordered_scan_zip():
    """Archive with scan_00N names stored out of order plus noise entries."""
    png = make_image_bytes((8, 8))
    return build_zip({
        'scan_003.jpg': png,
        'notes.txt': b"not an image",
        'scan_001.jpg': png,
        'subdir/': None,
        'scan_002.jpg': png,
    })
