"""
Run observation and progress reporting.

The converter never prints; it notifies a RunObserver. ConsoleObserver
turns those notifications into log lines and an updating progress bar.
"""

import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ocr import RecognitionResult
    from .config import LoggingConfig

logger = logging.getLogger(__name__)


@dataclass
class ProgressStats:
    """Statistics for progress tracking."""

    total: int
    current: int = 0
    start_time: float = field(default_factory=time.time)
    successful: int = 0
    failed: int = 0
    discarded: int = 0

    @property
    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate(self) -> float:
        """Items per second."""
        if self.elapsed == 0:
            return 0
        return self.current / self.elapsed

    @property
    def eta(self) -> float | None:
        """Estimated time remaining in seconds."""
        if self.rate == 0 or self.current == 0:
            return None
        return (self.total - self.current) / self.rate

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.current / self.total) * 100


def format_time(seconds: float | None) -> str:
    """Format seconds as human-readable time."""
    if seconds is None:
        return "--:--"

    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


class ProgressReporter:
    """Updating single-line progress bar on stderr.

    Usage:
        with ProgressReporter(total=12, desc="OCR", unit="pages") as progress:
            for page in pages:
                process(page)
                progress.update(item_name=f"page {page.index + 1}")
    """

    BAR_WIDTH = 20

    def __init__(self, total: int, desc: str = "Progress", unit: str = "items") -> None:
        """Initialize progress reporter.

        Args:
            total: Total number of items to process
            desc: Description prefix for progress line
            unit: Unit name for items (e.g., "pages")
        """
        self.stats = ProgressStats(total=total)
        self.desc = desc
        self.unit = unit
        self._output = sys.stderr
        self._is_tty = sys.stderr.isatty()
        self._last_line_len = 0
        self._item_name: str | None = None
        self._finished = False

    def __enter__(self):
        self.stats.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()

    def update(
        self,
        n: int = 1,
        success: bool = True,
        discarded: bool = False,
        item_name: str | None = None,
    ) -> None:
        """Record n completed items and redraw.

        Args:
            n: Number of items completed
            success: Whether the items were processed successfully
            discarded: Items completed but left out of the output
            item_name: Optional name of current item for display
        """
        self.stats.current += n
        if not success:
            self.stats.failed += n
        elif discarded:
            self.stats.discarded += n
        else:
            self.stats.successful += n
        self._item_name = item_name
        self._render()

    def set_item(self, name: str) -> None:
        """Set the current item name; shown on the next redraw."""
        self._item_name = name

    def render_line(self) -> str:
        stats = self.stats
        filled = int(self.BAR_WIDTH * stats.percent / 100)
        bar = "█" * filled + "░" * (self.BAR_WIDTH - filled)

        parts = [
            f"{self.desc}: [{bar}]",
            f"{stats.current}/{stats.total}",
            f"({stats.percent:.0f}%)",
            f"[{format_time(stats.elapsed)}<{format_time(stats.eta)}]",
        ]
        if stats.rate > 0:
            parts.append(f"{1 / stats.rate:.1f}s/{self.unit.rstrip('s')}")
        if self._item_name:
            parts.append(f"| {self._item_name}")
        return " ".join(parts)

    def _render(self) -> None:
        line = self.render_line()
        stats = self.stats

        if self._is_tty:
            clear = " " * max(0, self._last_line_len - len(line))
            self._output.write(f"\r{line}{clear}")
            self._last_line_len = len(line)
        elif stats.current in (1, stats.total) or stats.current % max(1, stats.total // 10) == 0:
            # Non-TTY: roughly every 10%
            self._output.write(line + "\n")
        self._output.flush()

    def summary(self) -> str:
        stats = self.stats
        elapsed_str = format_time(stats.elapsed)
        extras = []
        if stats.discarded:
            extras.append(f"{stats.discarded} empty")
        if stats.failed:
            extras.append(f"{stats.failed} failed")
        detail = f", {', '.join(extras)}" if extras else ""
        return (
            f"✓ {self.desc} complete: {stats.current}/{stats.total} {self.unit}"
            f"{detail} ({elapsed_str})"
        )

    def finish(self) -> None:
        """Finish progress and print summary (once)."""
        if self._finished:
            return
        self._finished = True
        if self._is_tty and self._last_line_len:
            self._output.write("\n")
        self._output.write(self.summary() + "\n")
        self._output.flush()


class RunObserver:
    """Receives conversion events. All hooks are no-ops by default.

    Page hooks may be called from worker threads when pages are processed
    concurrently.
    """

    def run_started(self, source: str, page_count: int) -> None:
        pass

    def page_started(self, index: int, total: int) -> None:
        pass

    def page_progress(self, index: int, percent: float) -> None:
        pass

    def page_completed(self, result: "RecognitionResult", discarded: bool) -> None:
        pass

    def page_failed(self, index: int, error: BaseException) -> None:
        pass

    def run_failed(self, error: BaseException) -> None:
        pass

    def run_finished(self, result) -> None:
        pass


class ConsoleObserver(RunObserver):
    """Logs page events and drives a ProgressReporter."""

    def __init__(self, config: "LoggingConfig") -> None:
        self.config = config
        self._lock = threading.Lock()
        self._progress: ProgressReporter | None = None

    def run_started(self, source: str, page_count: int) -> None:
        logger.info(f"Processing {page_count} pages from {source}")
        if self.config.show_progress:
            self._progress = ProgressReporter(page_count, desc="OCR", unit="pages").__enter__()

    def page_started(self, index: int, total: int) -> None:
        logger.debug(f"Processing page {index + 1}/{total}")
        with self._lock:
            if self._progress:
                self._progress.set_item(f"page {index + 1}")

    def page_progress(self, index: int, percent: float) -> None:
        logger.debug(f"Page {index + 1} OCR progress: {percent:.0f}%")

    def page_completed(self, result: "RecognitionResult", discarded: bool) -> None:
        page = result.page_index + 1
        logger.info(f"Page {page} OCR confidence: {result.confidence:.2f}% ({result.word_count} words)")
        if discarded:
            logger.info(f"Page {page} has no text, skipped")
        elif self.config.show_preview:
            preview = " ".join(result.text.split())[: self.config.max_preview_length]
            logger.info(f"Page {page} text preview: {preview}...")
        with self._lock:
            if self._progress:
                self._progress.update(discarded=discarded, item_name=f"page {page}")

    def page_failed(self, index: int, error: BaseException) -> None:
        logger.error(f"Page {index + 1} failed: {error}")
        with self._lock:
            if self._progress:
                self._progress.update(success=False, item_name=f"page {index + 1}")

    def run_failed(self, error: BaseException) -> None:
        self._close()
        logger.error(f"Conversion failed: {error}")

    def run_finished(self, result) -> None:
        self._close()

    def _close(self) -> None:
        with self._lock:
            if self._progress:
                self._progress.finish()
                self._progress = None
