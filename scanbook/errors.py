"""
Error types raised by the conversion pipeline.

The run controller is the only place that decides whether an error is
fatal; everything below it raises these and lets them propagate.
"""


class ScanbookError(Exception):
    """Base class for all scanbook errors."""


class ConfigurationError(ScanbookError, ValueError):
    """Invalid configuration (geometry, language set, numeric limits)."""


class CollaboratorUnavailable(ScanbookError, RuntimeError):
    """A native tool (poppler, tesseract) is missing.

    Attributes:
        hints: Install commands suitable for the current platform
    """

    def __init__(self, message: str, hints: list[str] | None = None) -> None:
        super().__init__(message)
        self.hints = hints or []

    def __str__(self) -> str:
        message = super().__str__()
        if not self.hints:
            return message
        lines = [message, "", "Install them with one of:"]
        lines.extend(f"  $ {hint}" for hint in self.hints)
        return "\n".join(lines)


class PageProcessingError(ScanbookError):
    """Enhancement or recognition failed for a specific page.

    Attributes:
        page_index: Zero-based index of the failing page
        stage: Pipeline stage that failed ("enhance", "recognize", ...)
    """

    def __init__(self, page_index: int, stage: str, message: str) -> None:
        super().__init__(f"Page {page_index + 1} failed during {stage}: {message}")
        self.page_index = page_index
        self.stage = stage


class PageTimeoutError(PageProcessingError):
    """A page took longer than the configured per-page timeout."""

    def __init__(self, page_index: int, timeout: float) -> None:
        super().__init__(page_index, "recognize", f"timed out after {timeout:g}s")
        self.timeout = timeout


class RunCancelled(ScanbookError):
    """The caller cancelled the run."""


class EmissionError(ScanbookError):
    """One output emitter failed.

    Attributes:
        emitter: Name of the emitter ("text_pdf" or "epub")
    """

    def __init__(self, emitter: str, message: str) -> None:
        super().__init__(f"{emitter} emission failed: {message}")
        self.emitter = emitter


class CleanupWarning(UserWarning):
    """Temporary directory removal failed. Logged, never raised."""
