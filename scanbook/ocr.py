"""
OCR via Tesseract (pytesseract).

One image_to_data call per page yields the text, the mean word confidence
and the word boxes.
"""

import logging
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytesseract
from PIL import Image

from .config import ENGINE_MODES, PAGE_SEG_MODES, OCRConfig
from .errors import CollaboratorUnavailable, ConfigurationError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class WordBox:
    """A recognized word with its pixel bounding box (left, top, width, height)."""

    text: str
    bbox: tuple[int, int, int, int]
    confidence: float


@dataclass(frozen=True)
class RecognitionResult:
    """OCR output for a single page.

    page_index is the zero-based position of the page in the source
    document and is kept even when other pages are dropped.
    """

    page_index: int
    text: str
    confidence: float
    words: tuple[WordBox, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {self.page_index}")
        object.__setattr__(self, "confidence", min(100.0, max(0.0, float(self.confidence))))
        object.__setattr__(self, "words", tuple(self.words))

    @property
    def is_empty(self) -> bool:
        return not (self.text or "").strip()

    @property
    def word_count(self) -> int:
        return len((self.text or "").split())


@dataclass(frozen=True)
class Recognition:
    """Raw recognizer output before it is bound to a page index."""

    text: str
    confidence: float
    words: tuple[WordBox, ...] = ()


def _install_hints() -> list[str]:
    if sys.platform == "darwin":
        return ["brew install tesseract tesseract-lang"]
    if sys.platform.startswith("linux"):
        return [
            "sudo apt-get update && sudo apt-get install -y tesseract-ocr tesseract-ocr-por",
            "# RPM: sudo dnf install tesseract tesseract-langpack-por",
        ]
    return ["choco install tesseract -y", "# or: scoop install tesseract"]


def check_available() -> str:
    """Return the installed Tesseract version.

    Raises:
        CollaboratorUnavailable: tesseract binary not found
    """
    try:
        return str(pytesseract.get_tesseract_version())
    except pytesseract.TesseractNotFoundError as e:
        raise CollaboratorUnavailable(
            "Could not find the Tesseract OCR engine (tesseract).",
            hints=_install_hints(),
        ) from e


def check_languages(languages: list[str]) -> None:
    """Ensure every language (as in OCRConfig.language_list) is installed.

    Raises:
        ConfigurationError: One or more language packs are missing
    """
    installed = set(pytesseract.get_languages(config=""))
    missing = [lang for lang in languages if lang not in installed]
    if missing:
        raise ConfigurationError(
            f"Tesseract language data not installed: {', '.join(missing)} "
            f"(installed: {', '.join(sorted(installed)) or 'none'})"
        )


class TesseractRecognizer:
    """Recognizes text on processed page images."""

    def __init__(self, config: OCRConfig) -> None:
        """Initialize recognizer.

        Args:
            config: OCR engine settings
        """
        self.config = config

    def build_tesseract_config(self) -> str:
        """Command-line options for the tesseract binary."""
        options = [
            f"--oem {ENGINE_MODES[self.config.engine]}",
            f"--psm {PAGE_SEG_MODES[self.config.page_seg_mode]}",
            f"--dpi {self.config.dpi}",
            f"-c preserve_interword_spaces={1 if self.config.preserve_spaces else 0}",
        ]
        if self.config.whitelist:
            options.append(
                "-c " + shlex.quote(f"tessedit_char_whitelist={self.config.whitelist}")
            )
        return " ".join(options)

    def recognize(
        self,
        image_path: Path,
        languages: str | None = None,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Recognition:
        """Run OCR on one image.

        Args:
            image_path: Processed page image
            languages: Language set, defaults to the configured one
            timeout: Seconds before the tesseract process is killed
            on_progress: Receives percentages in [0, 100]

        Returns:
            Recognition with text, mean confidence and word boxes

        Raises:
            TimeoutError: Tesseract exceeded the timeout
            CollaboratorUnavailable: tesseract binary not found
        """
        lang = languages or self.config.languages
        if on_progress:
            on_progress(0.0)

        try:
            with Image.open(image_path) as image:
                data = pytesseract.image_to_data(
                    image,
                    lang=lang,
                    config=self.build_tesseract_config(),
                    output_type=pytesseract.Output.DICT,
                    timeout=timeout or 0,
                )
        except pytesseract.TesseractNotFoundError as e:
            raise CollaboratorUnavailable(
                "Could not find the Tesseract OCR engine (tesseract).",
                hints=_install_hints(),
            ) from e
        except RuntimeError as e:
            # pytesseract signals a killed process with a bare RuntimeError
            if "timeout" in str(e).lower():
                raise TimeoutError(f"Tesseract timed out after {timeout}s on {image_path.name}") from e
            raise

        words = extract_words(data)
        confidence = (
            sum(w.confidence for w in words) / len(words) if words else 0.0
        )
        text = assemble_text(data)

        if on_progress:
            on_progress(100.0)

        logger.debug(f"Recognized {len(words)} words in {image_path.name} ({confidence:.1f}%)")
        return Recognition(text=text, confidence=confidence, words=tuple(words))


def _as_confidence(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return -1.0


def extract_words(data: dict) -> list[WordBox]:
    """Word boxes for every real word (non-blank text, conf >= 0)."""
    words = []
    for i, raw in enumerate(data["text"]):
        word = (raw or "").strip()
        conf = _as_confidence(data["conf"][i])
        if not word or conf < 0:
            continue
        words.append(WordBox(
            text=word,
            bbox=(
                int(data["left"][i]),
                int(data["top"][i]),
                int(data["width"][i]),
                int(data["height"][i]),
            ),
            confidence=conf,
        ))
    return words


def assemble_text(data: dict) -> str:
    """Rebuild page text from image_to_data output.

    Words on the same line are joined by spaces, lines of a block by
    newlines and blocks by a blank line.
    """
    # {block_num: {par_num: {line_num: [words]}}}
    blocks: dict[int, dict[int, dict[int, list[str]]]] = {}

    for i, raw in enumerate(data["text"]):
        word = (raw or "").strip()
        if not word:
            continue
        block = blocks.setdefault(data["block_num"][i], {})
        par = block.setdefault(data["par_num"][i], {})
        par.setdefault(data["line_num"][i], []).append(word)

    result_blocks = []
    for block_num in sorted(blocks):
        block_lines = []
        for par_num in sorted(blocks[block_num]):
            for line_num in sorted(blocks[block_num][par_num]):
                block_lines.append(" ".join(blocks[block_num][par_num][line_num]))
        result_blocks.append("\n".join(block_lines))

    return "\n\n".join(result_blocks)
