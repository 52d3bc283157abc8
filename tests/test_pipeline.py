"""Tests for the run controller (DocumentConverter)."""

import logging
import zipfile

import pytest
from conftest import (
    FakeEnhancer,
    FakeRasterizer,
    FakeRecognizer,
    RecordingObserver,
    files_under,
)

from scanbook.errors import (
    CleanupWarning,
    ConfigurationError,
    EmissionError,
    PageProcessingError,
    RunCancelled,
)
from scanbook.pipeline import DocumentConverter, RunContext, RunState
from scanbook.storage import OutputStore


def make_converter(config, page_count=3, texts=None, **recognizer_kwargs):
    observer = RecordingObserver()
    recognizer = FakeRecognizer(texts or {}, **recognizer_kwargs)
    converter = DocumentConverter(
        config,
        rasterizer=FakeRasterizer(page_count),
        enhancer=FakeEnhancer(),
        recognizer=recognizer,
        observer=observer,
    )
    return converter, observer, recognizer


class TestSuccessfulRun:
    """Happy path: both outputs written, temp directory removed."""

    def test_writes_both_outputs(self, make_config, source_pdf, dirs):
        converter, observer, _ = make_converter(
            make_config(), texts={0: "Hello world", 1: "", 2: "Line two"}
        )
        result = converter.convert(source_pdf)

        assert result.success, result.message
        assert result.text_pdf_path == dirs["output"] / "scan_text.pdf"
        assert result.epub_path == dirs["output"] / "scan.epub"
        assert result.text_pdf_path.read_bytes().startswith(b"%PDF")

        epub = zipfile.ZipFile(result.epub_path)
        chapters = sorted(n for n in epub.namelist() if n.startswith("OEBPS/chapter"))
        assert len(chapters) == 2
        assert "<h2>Page 3</h2>" in epub.read(chapters[1]).decode("utf-8")

    def test_state_history(self, make_config, source_pdf):
        converter, _, _ = make_converter(make_config(), texts={0: "a"})
        result = converter.convert(source_pdf)

        assert result.history == [
            RunState.INIT,
            RunState.DIRECTORIES_READY,
            RunState.PIPELINED,
            RunState.EMITTED,
            RunState.CLEANED_UP,
            RunState.DONE,
        ]

    def test_results_exclude_empty_pages(self, make_config, source_pdf):
        converter, _, _ = make_converter(make_config(), texts={0: "a", 2: "c"})
        result = converter.convert(source_pdf)

        assert [r.page_index for r in result.results] == [0, 2]
        assert result.message == "Successfully converted 2 pages"
        # Report still covers every recognized page
        assert result.report.total_pages == 3
        assert result.report.empty_pages == [1]

    def test_temp_directory_removed(self, make_config, source_pdf, dirs):
        converter, _, _ = make_converter(make_config(), texts={0: "a"})
        converter.convert(source_pdf)
        assert files_under(dirs["temp"]) == []
        assert list(dirs["temp"].iterdir()) == []

    def test_temp_directory_kept_when_configured(self, make_config, source_pdf, dirs):
        config = make_config(advanced={"cleanup_temp_files": False})
        converter, _, _ = make_converter(config, texts={0: "a"})
        result = converter.convert(source_pdf)

        assert result.success
        # Page files are still released individually
        assert files_under(dirs["temp"]) == []
        assert len(list(dirs["temp"].iterdir())) == 1

    def test_zero_page_document(self, make_config, source_pdf):
        converter, _, _ = make_converter(make_config(), page_count=0)
        result = converter.convert(source_pdf)

        assert result.success
        assert result.results == []
        assert result.text_pdf_path.read_bytes().startswith(b"%PDF")
        assert result.epub_path.exists()

    def test_observer_events(self, make_config, source_pdf):
        converter, observer, _ = make_converter(make_config(), texts={0: "a", 1: "b", 2: "c"})
        converter.convert(source_pdf)

        assert observer.of_kind("run_started") == [("run_started", 3)]
        assert len(observer.of_kind("page_completed")) == 3
        assert observer.events[-1] == ("run_finished",)

    def test_concurrent_run(self, make_config, source_pdf):
        config = make_config(performance={"max_concurrent_pages": 3})
        converter, _, _ = make_converter(
            config, page_count=6, texts={i: f"page {i}" for i in range(6)}
        )
        result = converter.convert(source_pdf)

        assert result.success
        assert [r.page_index for r in result.results] == list(range(6))


class TestFailedRun:
    """Failures end in FAILED with no temporary files left behind."""

    def test_page_failure(self, make_config, source_pdf, dirs):
        converter, observer, _ = make_converter(
            make_config(), texts={0: "a", 2: "c"}, fail_on={1}
        )
        result = converter.convert(source_pdf)

        assert not result.success
        assert result.state == RunState.FAILED
        assert isinstance(result.error, PageProcessingError)
        assert result.error.page_index == 1
        assert RunState.PIPELINED not in result.history
        assert result.history[-2:] == [RunState.CLEANED_UP, RunState.FAILED]
        assert files_under(dirs["temp"]) == []
        assert files_under(dirs["output"]) == []
        assert observer.of_kind("run_failed") == [("run_failed", "PageProcessingError")]

    def test_missing_source(self, make_config, tmp_path, dirs):
        converter, _, _ = make_converter(make_config())
        result = converter.convert(tmp_path / "missing.pdf")

        assert result.state == RunState.FAILED
        assert isinstance(result.error, ConfigurationError)
        assert "File not found" in result.message
        assert result.history == [RunState.INIT, RunState.FAILED]
        assert not dirs["output"].exists()

    def test_rasterizer_failure(self, make_config, source_pdf, dirs):
        class BrokenRasterizer(FakeRasterizer):
            def rasterize(self, source, output_dir):
                super().rasterize(source, output_dir)
                raise ValueError("Not a valid PDF")

        converter = DocumentConverter(
            make_config(),
            rasterizer=BrokenRasterizer(2),
            enhancer=FakeEnhancer(),
            recognizer=FakeRecognizer({}),
            observer=RecordingObserver(),
        )
        result = converter.convert(source_pdf)

        assert result.state == RunState.FAILED
        assert "Not a valid PDF" in result.message
        assert files_under(dirs["temp"]) == []

    def test_cancel(self, make_config, source_pdf, dirs):
        converter = None

        def cancel_on_first_page(index):
            converter.cancel()

        converter, _, recognizer = make_converter(
            make_config(), texts={0: "a"}, on_call=cancel_on_first_page
        )
        result = converter.convert(source_pdf)

        assert result.state == RunState.FAILED
        assert isinstance(result.error, RunCancelled)
        assert len(recognizer.calls) == 1
        assert files_under(dirs["temp"]) == []

    def test_cancel_before_convert_is_honored(self, make_config, source_pdf, dirs):
        """A cancel that lands before convert() starts stops that run."""
        converter, _, recognizer = make_converter(make_config(), texts={0: "a"})
        converter.cancel()
        result = converter.convert(source_pdf)

        assert result.state == RunState.FAILED
        assert isinstance(result.error, RunCancelled)
        assert recognizer.calls == []
        assert files_under(dirs["temp"]) == []

    def test_converter_reusable_after_cancel(self, make_config, source_pdf):
        converter, _, _ = make_converter(make_config(), texts={0: "a"})
        converter.cancel()
        assert not converter.convert(source_pdf).success
        assert converter.convert(source_pdf).success


class TestEmission:
    """One output failing does not stop the other."""

    def test_text_pdf_failure_still_writes_epub(self, make_config, source_pdf, monkeypatch):
        def broken_emit(self, results, store, output_path):
            raise OSError("disk full")

        monkeypatch.setattr("scanbook.pipeline.TextPDFEmitter.emit", broken_emit)
        converter, _, _ = make_converter(make_config(), texts={0: "a"})
        result = converter.convert(source_pdf)

        assert result.state == RunState.FAILED
        assert RunState.EMITTED in result.history
        assert list(result.emission_errors) == ["text_pdf"]
        error = result.emission_errors["text_pdf"]
        assert isinstance(error, EmissionError)
        assert isinstance(error.__cause__, OSError)
        assert result.error is error
        assert result.text_pdf_path is None
        assert result.epub_path.exists()

    def test_epub_failure_still_writes_text_pdf(self, make_config, source_pdf, monkeypatch):
        def broken_emit(self, results, store, output_path):
            raise OSError("read-only file system")

        monkeypatch.setattr("scanbook.pipeline.EPUBBuilder.emit", broken_emit)
        converter, _, _ = make_converter(make_config(), texts={0: "a"})
        result = converter.convert(source_pdf)

        assert result.state == RunState.FAILED
        assert list(result.emission_errors) == ["epub"]
        assert result.text_pdf_path.exists()
        assert result.epub_path is None


class TestCleanup:
    """Cleanup failures warn but never fail the run."""

    def test_cleanup_failure_warns(self, make_config, source_pdf):
        class StickyStore(OutputStore):
            def remove_dir(self, path):
                raise PermissionError(f"cannot remove {path}")

        converter = DocumentConverter(
            make_config(),
            rasterizer=FakeRasterizer(1),
            enhancer=FakeEnhancer(),
            recognizer=FakeRecognizer({0: "a"}),
            store=StickyStore(),
            observer=RecordingObserver(),
        )

        with pytest.warns(CleanupWarning):
            result = converter.convert(source_pdf)

        assert result.success
        assert RunState.CLEANED_UP in result.history

    def test_temp_dir_per_run(self, make_config, source_pdf):
        rasterizer = FakeRasterizer(1)
        converter = DocumentConverter(
            make_config(),
            rasterizer=rasterizer,
            enhancer=FakeEnhancer(),
            recognizer=FakeRecognizer({0: "a"}),
            observer=RecordingObserver(),
        )
        converter.convert(source_pdf)
        converter.convert(source_pdf)

        first, second = rasterizer.output_dirs
        assert first != second
        assert first.name.startswith("scan_")


class TestRunContext:
    def test_output_names(self, tmp_path):
        context = RunContext(
            source=tmp_path / "book.pdf",
            basename="book",
            temp_dir=tmp_path / "temp" / "book_1234",
            output_dir=tmp_path / "out",
        )
        assert context.text_pdf_path == tmp_path / "out" / "book_text.pdf"
        assert context.epub_path == tmp_path / "out" / "book.epub"


class TestLogging:
    """logging.level and the end-of-run log lines."""

    def test_configured_level_applied(self, make_config, source_pdf, caplog):
        caplog.set_level(logging.INFO)
        converter, _, _ = make_converter(make_config(logging={"level": "error"}), texts={0: "a"})

        assert logging.getLogger("scanbook").getEffectiveLevel() == logging.ERROR
        assert converter.convert(source_pdf).success
        assert "Converting" not in caplog.text

    def test_quality_summary_logged(self, make_config, source_pdf, caplog):
        caplog.set_level(logging.INFO)
        converter, _, _ = make_converter(
            make_config(), texts={0: "blurry", 1: "sharp"}, confidence={0: 5.0}, page_count=2
        )
        result = converter.convert(source_pdf)

        assert result.report.warning_count == 1
        assert "OCR Quality Report" in caplog.text
        assert "LOW_CONFIDENCE" in caplog.text

    def test_no_summary_for_clean_run(self, make_config, source_pdf, caplog):
        caplog.set_level(logging.INFO)
        converter, _, _ = make_converter(make_config(), texts={0: "a"}, page_count=1)
        converter.convert(source_pdf)
        assert "OCR Quality Report" not in caplog.text

    def test_kept_temp_directory_logged(self, make_config, source_pdf, caplog):
        caplog.set_level(logging.INFO)
        config = make_config(advanced={"cleanup_temp_files": False})
        converter, _, _ = make_converter(config, texts={0: "a"})
        converter.convert(source_pdf)
        assert "Keeping temporary directory" in caplog.text
        assert "(0 files)" in caplog.text
