"""Shared fakes and fixtures for the scanbook test suite.

The fakes stand in for poppler, Pillow filtering and Tesseract so the
pipeline can be exercised without native tools. They still create and
expect real files, so artifact cleanup is observable on disk.
"""

import logging
import threading
import time
from pathlib import Path

import pytest

from scanbook.config import ConverterConfig
from scanbook.ocr import Recognition, RecognitionResult
from scanbook.preprocessor import processed_path_for
from scanbook.progress import RunObserver
from scanbook.rasterizer import RasterPageRef


def page_index_from_path(path: Path) -> int:
    """page-0002.png / page-0002_processed.png -> 2"""
    return int(path.stem.split("-")[1].split("_")[0])


class FakeRasterizer:
    """Writes one placeholder image file per page."""

    def __init__(self, page_count: int) -> None:
        self.page_count = page_count
        self.output_dirs: list[Path] = []

    def rasterize(self, source: Path, output_dir: Path) -> list[RasterPageRef]:
        output_dir.mkdir(parents=True, exist_ok=True)
        self.output_dirs.append(output_dir)
        pages = []
        for i in range(self.page_count):
            path = output_dir / f"page-{i:04d}.png"
            path.write_bytes(b"raster")
            pages.append(RasterPageRef(index=i, path=path))
        return pages


class FakeEnhancer:
    """Copies the raster file to its processed name; can fail on chosen pages."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls: list[int] = []
        self._lock = threading.Lock()

    def enhance(self, raster_path: Path) -> Path:
        index = page_index_from_path(raster_path)
        with self._lock:
            self.calls.append(index)
        output = processed_path_for(raster_path)
        output.write_bytes(b"processed")
        if index in self.fail_on:
            raise OSError(f"cannot enhance {raster_path.name}")
        return output


class FakeRecognizer:
    """Returns canned text per page index.

    Args:
        texts: page index -> recognized text
        confidence: page index -> confidence (default 90)
        fail_on: page indexes that raise
        delays: page index -> seconds to sleep
        clock: FakeClock advanced by clock_advance[index] per call
    """

    def __init__(
        self,
        texts: dict[int, str],
        confidence: dict[int, float] | None = None,
        fail_on: set[int] | None = None,
        delays: dict[int, float] | None = None,
        clock: "FakeClock | None" = None,
        clock_advance: dict[int, float] | None = None,
        on_call=None,
    ) -> None:
        self.texts = texts
        self.confidence = confidence or {}
        self.fail_on = fail_on or set()
        self.delays = delays or {}
        self.clock = clock
        self.clock_advance = clock_advance or {}
        self.on_call = on_call
        self.calls: list[tuple[int, str, float | None]] = []
        self._lock = threading.Lock()

    def recognize(self, image_path, languages=None, timeout=None, on_progress=None):
        index = page_index_from_path(Path(image_path))
        assert Path(image_path).exists(), "processed image must exist during recognition"
        with self._lock:
            self.calls.append((index, languages, timeout))
        if on_progress:
            on_progress(0.0)
        if self.on_call:
            self.on_call(index)
        if index in self.delays:
            time.sleep(self.delays[index])
        if self.clock is not None:
            self.clock.advance(self.clock_advance.get(index, 0.0))
        if index in self.fail_on:
            raise RuntimeError(f"OCR engine crashed on page {index + 1}")
        if on_progress:
            on_progress(100.0)
        return Recognition(
            text=self.texts.get(index, ""),
            confidence=self.confidence.get(index, 90.0),
        )


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingObserver(RunObserver):
    """Collects every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event) -> None:
        with self._lock:
            self.events.append(event)

    def run_started(self, source, page_count):
        self._record("run_started", page_count)

    def page_started(self, index, total):
        self._record("page_started", index)

    def page_progress(self, index, percent):
        self._record("page_progress", index, percent)

    def page_completed(self, result, discarded):
        self._record("page_completed", result.page_index, discarded)

    def page_failed(self, index, error):
        self._record("page_failed", index, type(error).__name__)

    def run_failed(self, error):
        self._record("run_failed", type(error).__name__)

    def run_finished(self, result):
        self._record("run_finished")

    def of_kind(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


def make_results(*texts: str) -> list[RecognitionResult]:
    """RecognitionResults for consecutive pages starting at index 0."""
    return [
        RecognitionResult(page_index=i, text=text, confidence=90.0)
        for i, text in enumerate(texts)
    ]


def files_under(path: Path) -> list[Path]:
    if not path.exists():
        return []
    return sorted(p for p in path.rglob("*") if p.is_file())


@pytest.fixture
def dirs(tmp_path: Path) -> dict[str, Path]:
    return {"temp": tmp_path / "temp", "output": tmp_path / "output"}


@pytest.fixture
def source_pdf(tmp_path: Path) -> Path:
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4 placeholder")
    return path


@pytest.fixture
def make_config(dirs):
    """Factory for configs pointing at the test's temp/output directories."""

    def factory(**sections) -> ConverterConfig:
        overrides = {
            "directories": {"temp": dirs["temp"], "output": dirs["output"]},
            "logging": {"show_progress": False},
        }
        for name, values in sections.items():
            overrides.setdefault(name, {}).update(values)
        return ConverterConfig.from_dict(overrides)

    return factory


@pytest.fixture(autouse=True)
def reset_package_log_level():
    """DocumentConverter sets the scanbook logger level; undo it per test."""
    yield
    logging.getLogger("scanbook").setLevel(logging.NOTSET)
