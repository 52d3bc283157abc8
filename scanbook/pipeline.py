"""
Run controller: one PDF in, a text PDF and an EPUB out.

    Init -> DirectoriesReady -> Pipelined -> Emitted -> CleanedUp -> Done
                 any state -> Failed

The controller is the only place that decides whether an error ends the
run. Temporary files are removed on every path out of the run once the
directories exist.
"""

import logging
import threading
import time
import uuid
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from . import ocr, rasterizer
from .config import ConverterConfig
from .epub_builder import EPUBBuilder, EPUBMetadata
from .errors import CleanupWarning, ConfigurationError, EmissionError, RunCancelled, ScanbookError
from .ocr import RecognitionResult, TesseractRecognizer
from .page_pipeline import Enhancer, PagePipeline, Recognizer
from .preprocessor import ImageEnhancer
from .progress import ConsoleObserver, RunObserver
from .quality import ConfidenceReport
from .rasterizer import PDFRasterizer, RasterPageRef
from .storage import OutputStore
from .text_pdf import TextPDFEmitter

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class RunState(Enum):
    INIT = "init"
    DIRECTORIES_READY = "directories_ready"
    PIPELINED = "pipelined"
    EMITTED = "emitted"
    CLEANED_UP = "cleaned_up"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunContext:
    """Paths for one run, fixed at Init."""

    source: Path
    basename: str
    temp_dir: Path
    output_dir: Path

    @property
    def text_pdf_path(self) -> Path:
        return self.output_dir / f"{self.basename}_text.pdf"

    @property
    def epub_path(self) -> Path:
        return self.output_dir / f"{self.basename}.epub"


@dataclass
class ConversionResult:
    """Outcome of DocumentConverter.convert()."""

    state: RunState = RunState.INIT
    text_pdf_path: Path | None = None
    epub_path: Path | None = None
    results: list[RecognitionResult] = field(default_factory=list)
    emission_errors: dict[str, EmissionError] = field(default_factory=dict)
    error: BaseException | None = None
    report: ConfidenceReport | None = None
    elapsed: float = 0.0
    history: list[RunState] = field(default_factory=lambda: [RunState.INIT])

    @property
    def success(self) -> bool:
        return self.state == RunState.DONE

    @property
    def message(self) -> str:
        if self.success:
            return f"Successfully converted {len(self.results)} pages"
        if self.error is not None:
            return str(self.error)
        return "Conversion did not complete"

    def transition(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)


class DocumentConverter:
    """Converts an image-only PDF into a text PDF and an EPUB.

    Usage:
        config = ConverterConfig.from_dict({"ocr": {"languages": "eng"}})
        converter = DocumentConverter(config)
        result = converter.convert("scan.pdf")
        if not result.success:
            print(result.message)

    The rasterizer, enhancer, recognizer and store may be replaced (tests
    use in-memory fakes). Native tool checks only run for the default
    collaborators.
    """

    def __init__(
        self,
        config: ConverterConfig | None = None,
        rasterizer: PDFRasterizer | None = None,
        enhancer: Enhancer | None = None,
        recognizer: Recognizer | None = None,
        store: OutputStore | None = None,
        observer: RunObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ConverterConfig()
        self._check_raster_tools = rasterizer is None
        self._check_ocr_engine = recognizer is None
        self.rasterizer = rasterizer or PDFRasterizer(self.config.raster)
        self.enhancer = enhancer or ImageEnhancer(self.config.enhance)
        self.recognizer = recognizer or TesseractRecognizer(self.config.ocr)
        self.store = store or OutputStore()
        self.observer = observer or ConsoleObserver(self.config.logging)
        self.clock = clock
        self._cancel = threading.Event()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Apply logging.level to the package logger.

        A basic root config is installed only if the caller has not set one up.
        """
        level = LOG_LEVELS[self.config.logging.level.lower()]
        logging.getLogger("scanbook").setLevel(level)
        if not logging.root.handlers:
            logging.basicConfig(
                level=level,
                format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        for noisy in ("PIL", "pdf2image"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    def cancel(self) -> None:
        """Ask the running conversion to stop after in-flight pages release their files."""
        self._cancel.set()

    def convert(self, source_path: Path | str) -> ConversionResult:
        """Run the full conversion.

        Fatal errors do not propagate; they end the run in the FAILED state
        with ConversionResult.error set.

        Args:
            source_path: Image-only PDF

        Returns:
            ConversionResult
        """
        source = Path(source_path)
        start = self.clock()
        result = ConversionResult()
        context: RunContext | None = None

        try:
            self._validate_source(source)
            self._preflight()

            context = self._create_context(source)
            self.store.ensure_dir(context.output_dir)
            self.store.ensure_dir(context.temp_dir)
            result.transition(RunState.DIRECTORIES_READY)

            logger.info(f"Converting {source}")
            pages = self._rasterize(context)
            self.observer.run_started(str(source), len(pages))

            pipeline = PagePipeline(
                self.config,
                self.enhancer,
                self.recognizer,
                observer=self.observer,
                cancel_event=self._cancel,
                clock=self.clock,
            )
            outcome = pipeline.run(pages)
            result.results = outcome.results
            result.report = ConfidenceReport.from_results(
                outcome.recognized,
                self.config.advanced.min_confidence,
                total_pages=len(pages),
            )
            result.transition(RunState.PIPELINED)

            self._emit(context, result)
            result.transition(RunState.EMITTED)

        except KeyboardInterrupt:
            self._cancel.set()
            result.error = RunCancelled("Interrupted")
        except ScanbookError as e:
            result.error = e
        except Exception as e:
            logger.exception("Conversion failed")
            result.error = e
        finally:
            if context is not None:
                self._cleanup(context)
                result.transition(RunState.CLEANED_UP)
            self._cancel.clear()

        if result.error is None and result.emission_errors:
            result.error = next(iter(result.emission_errors.values()))

        result.elapsed = self.clock() - start
        if result.error is None:
            result.transition(RunState.DONE)
            self._log_summary(result)
            self.observer.run_finished(result)
        else:
            result.transition(RunState.FAILED)
            self.observer.run_failed(result.error)

        return result

    def _validate_source(self, source: Path) -> None:
        if not source.is_file():
            raise ConfigurationError(f"File not found: {source}")

    def _preflight(self) -> None:
        """Fail before any work when native tools or language data are missing."""
        if self._check_raster_tools:
            rasterizer.check_binaries()
        if self._check_ocr_engine:
            ocr.check_available()
            ocr.check_languages(self.config.ocr.language_list)

    def _create_context(self, source: Path) -> RunContext:
        basename = source.stem
        run_id = uuid.uuid4().hex[:8]
        return RunContext(
            source=source,
            basename=basename,
            temp_dir=self.config.directories.temp / f"{basename}_{run_id}",
            output_dir=self.config.directories.output,
        )

    def _rasterize(self, context: RunContext) -> list[RasterPageRef]:
        pages = self.rasterizer.rasterize(context.source, context.temp_dir)
        logger.info(f"Rendered {len(pages)} pages")
        return pages

    def _emit(self, context: RunContext, result: ConversionResult) -> None:
        """Attempt both outputs; a failure in one does not stop the other."""
        emitters = [
            ("text_pdf", self._emit_text_pdf, context.text_pdf_path),
            ("epub", self._emit_epub, context.epub_path),
        ]

        for name, emit, path in emitters:
            try:
                emit(context, path, result.results)
            except Exception as e:
                logger.error(f"Could not write {path}: {e}")
                error = EmissionError(name, str(e))
                error.__cause__ = e
                result.emission_errors[name] = error
                continue

            if name == "text_pdf":
                result.text_pdf_path = path
            else:
                result.epub_path = path

    def _emit_text_pdf(
        self, context: RunContext, path: Path, results: list[RecognitionResult]
    ) -> None:
        emitter = TextPDFEmitter(
            self.config.text_pdf,
            skip_empty=self.config.advanced.skip_empty_pages,
        )
        emitter.emit(results, self.store, path)

    def _emit_epub(
        self, context: RunContext, path: Path, results: list[RecognitionResult]
    ) -> None:
        epub = self.config.epub
        metadata = EPUBMetadata(
            title=f"{context.basename} (Converted)",
            author=epub.author,
            language=epub.language,
            publisher=epub.publisher,
        )
        builder = EPUBBuilder(
            metadata,
            css=epub.css,
            toc_title=epub.toc_title,
            chapter_title=epub.chapter_title,
        )
        builder.emit(results, self.store, path)

    def _cleanup(self, context: RunContext) -> None:
        """Remove the run's temporary directory. Never fails the run."""
        if not self.config.advanced.cleanup_temp_files:
            kept = self.store.list_files(context.temp_dir)
            logger.info(f"Keeping temporary directory: {context.temp_dir} ({len(kept)} files)")
            return
        try:
            self.store.remove_dir(context.temp_dir)
            logger.info("Temporary files cleaned up")
        except OSError as e:
            message = f"Could not clean up temporary files in {context.temp_dir}: {e}"
            logger.warning(message)
            warnings.warn(message, CleanupWarning, stacklevel=2)

    def _log_summary(self, result: ConversionResult) -> None:
        mins = int(result.elapsed // 60)
        secs = int(result.elapsed % 60)
        logger.info(f"Conversion completed in {mins}m {secs}s")
        logger.info(f"  Text PDF: {result.text_pdf_path}")
        logger.info(f"  EPUB: {result.epub_path}")
        if result.report is not None:
            logger.info(f"  Mean OCR confidence: {result.report.mean_confidence:.1f}%")
            if result.report.warning_count:
                logger.warning(result.report.summary())
