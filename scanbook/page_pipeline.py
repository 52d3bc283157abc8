"""
Page pipeline: enhance and recognize each rendered page.

Every page owns its raster and processed image files. They are deleted as
soon as the page's recognition result is captured, on success, on discard
and on failure alike. Pages may be processed by a bounded worker pool, but
results always come back ordered by page index.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Protocol, Sequence

from .config import ConverterConfig
from .errors import (
    CollaboratorUnavailable,
    PageProcessingError,
    PageTimeoutError,
    RunCancelled,
)
from .ocr import Recognition, RecognitionResult
from .preprocessor import processed_path_for
from .progress import RunObserver
from .rasterizer import RasterPageRef

logger = logging.getLogger(__name__)


class Enhancer(Protocol):
    def enhance(self, raster_path: Path) -> Path: ...


class Recognizer(Protocol):
    def recognize(
        self,
        image_path: Path,
        languages: str | None = None,
        timeout: float | None = None,
        on_progress: Callable[[float], None] | None = None,
    ) -> Recognition: ...


class PageState(Enum):
    """Lifecycle of a page inside the pipeline."""

    RASTERIZED = "rasterized"
    ENHANCED = "enhanced"
    RECOGNIZED = "recognized"
    DISCARDED = "discarded"
    FAILED = "failed"


@dataclass
class PipelinePage:
    """Working record for one page while it is being processed."""

    index: int
    raster_path: Path
    processed_path: Path | None = None
    state: PageState = PageState.RASTERIZED

    @property
    def artifacts(self) -> list[Path]:
        paths = [self.raster_path, processed_path_for(self.raster_path)]
        if self.processed_path is not None and self.processed_path not in paths:
            paths.append(self.processed_path)
        return paths


@dataclass
class PipelineOutcome:
    """Recognized pages, split into kept and discarded (both ascending by page_index)."""

    results: list[RecognitionResult] = field(default_factory=list)
    discarded: list[RecognitionResult] = field(default_factory=list)

    @property
    def recognized(self) -> list[RecognitionResult]:
        return sorted(self.results + self.discarded, key=lambda r: r.page_index)


def release_artifacts(paths: Sequence[Path]) -> None:
    """Delete page files. Failures are logged, not raised."""
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temporary file {path}: {e}")


@contextmanager
def page_artifacts(page: PipelinePage) -> Iterator[PipelinePage]:
    """Scope a page's temporary files; they are removed on every exit path."""
    try:
        yield page
    finally:
        release_artifacts(page.artifacts)


class PagePipeline:
    """Drives rendered pages through enhancement and recognition.

    Usage:
        pipeline = PagePipeline(config, ImageEnhancer(config.enhance),
                                TesseractRecognizer(config.ocr))
        outcome = pipeline.run(raster_pages)
    """

    def __init__(
        self,
        config: ConverterConfig,
        enhancer: Enhancer,
        recognizer: Recognizer,
        observer: RunObserver | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Converter configuration
            enhancer: Produces a processed image from a raster page
            recognizer: OCR engine
            observer: Receives page events
            cancel_event: When set, pages stop at their next checkpoint
            clock: Monotonic time source for per-page timeouts
        """
        self.config = config
        self.enhancer = enhancer
        self.recognizer = recognizer
        self.observer = observer or RunObserver()
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock

    def run(self, pages: Sequence[RasterPageRef]) -> PipelineOutcome:
        """Process all pages.

        Args:
            pages: Rendered pages; ownership of their files passes to the pipeline

        Returns:
            PipelineOutcome ordered by page index

        Raises:
            PageProcessingError: A page failed or timed out (first failure wins)
            CollaboratorUnavailable: The OCR engine is missing
            RunCancelled: cancel_event was set
        """
        pages = sorted(pages, key=lambda p: p.index)
        workers = self.config.performance.max_concurrent_pages

        if workers == 1 or len(pages) <= 1:
            collected = self._run_sequential(pages)
        else:
            collected = self._run_concurrent(pages, workers)

        outcome = PipelineOutcome()
        for result, discarded in sorted(collected, key=lambda item: item[0].page_index):
            (outcome.discarded if discarded else outcome.results).append(result)
        return outcome

    def _run_sequential(self, pages: list[RasterPageRef]) -> list[tuple[RecognitionResult, bool]]:
        collected = []
        remaining = list(pages)
        try:
            while remaining:
                ref = remaining.pop(0)
                collected.append(self._process_page(ref, len(pages)))
        finally:
            # Pages never started still own their raster files
            release_artifacts([ref.path for ref in remaining])
        return collected

    def _run_concurrent(
        self,
        pages: list[RasterPageRef],
        workers: int,
    ) -> list[tuple[RecognitionResult, bool]]:
        collected = []
        futures: dict[Future, RasterPageRef] = {}
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page") as executor:
                for ref in pages:
                    futures[executor.submit(self._process_page, ref, len(pages))] = ref
                try:
                    for future in as_completed(futures):
                        collected.append(future.result())
                except BaseException:
                    # Stop queued pages; in-flight ones stop at their next checkpoint
                    self.cancel_event.set()
                    for future in futures:
                        future.cancel()
                    raise
                # Leaving the executor block waits for in-flight pages
        finally:
            release_artifacts([ref.path for future, ref in futures.items() if future.cancelled()])
        return collected

    def _checkpoint(self, page: PipelinePage, stage: str) -> None:
        if self.cancel_event.is_set():
            raise RunCancelled(f"Cancelled before {stage} of page {page.index + 1}")

    def _check_deadline(self, page: PipelinePage, deadline: float) -> None:
        if self.clock() > deadline:
            raise PageTimeoutError(page.index, self.config.performance.timeout)

    def _process_page(self, ref: RasterPageRef, total: int) -> tuple[RecognitionResult, bool]:
        """Enhance and recognize one page, releasing its files afterwards.

        Returns:
            (result, discarded)
        """
        page = PipelinePage(index=ref.index, raster_path=ref.path)
        timeout = self.config.performance.timeout
        deadline = self.clock() + timeout
        self.observer.page_started(page.index, total)

        try:
            with page_artifacts(page):
                self._checkpoint(page, "enhancement")
                page.processed_path = self._enhance(page)
                page.state = PageState.ENHANCED
                self._check_deadline(page, deadline)

                self._checkpoint(page, "recognition")
                recognition = self._recognize(page, deadline)
                self._check_deadline(page, deadline)

                result = RecognitionResult(
                    page_index=page.index,
                    text=recognition.text,
                    confidence=recognition.confidence,
                    words=recognition.words,
                )
                page.state = PageState.RECOGNIZED
                if self.config.advanced.skip_empty_pages and result.is_empty:
                    page.state = PageState.DISCARDED
        except BaseException as e:
            page.state = PageState.FAILED
            self.observer.page_failed(page.index, e)
            raise

        discarded = page.state == PageState.DISCARDED
        self.observer.page_completed(result, discarded)
        return result, discarded

    def _enhance(self, page: PipelinePage) -> Path:
        try:
            return self.enhancer.enhance(page.raster_path)
        except (CollaboratorUnavailable, RunCancelled):
            raise
        except Exception as e:
            raise PageProcessingError(page.index, "enhance", str(e)) from e

    def _recognize(self, page: PipelinePage, deadline: float) -> Recognition:
        remaining = max(deadline - self.clock(), 0.001)
        try:
            return self.recognizer.recognize(
                page.processed_path,
                self.config.ocr.languages,
                timeout=remaining,
                on_progress=lambda pct: self.observer.page_progress(page.index, pct),
            )
        except TimeoutError as e:
            raise PageTimeoutError(page.index, self.config.performance.timeout) from e
        except (CollaboratorUnavailable, RunCancelled):
            raise
        except Exception as e:
            raise PageProcessingError(page.index, "recognize", str(e)) from e
