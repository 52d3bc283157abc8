"""
Configuration for the PDF to text-PDF/EPUB converter.

A ConverterConfig is built once per run (defaults, then an optional preset,
then user overrides) and passed explicitly to every component. All sections
are frozen dataclasses.
"""

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .layout import LayoutGeometry

LANGUAGE_SET_PATTERN = re.compile(r"^[A-Za-z_]+(\+[A-Za-z_]+)*$")

# Tesseract engine modes (--oem)
ENGINE_MODES = {
    "TESSERACT_ONLY": 0,
    "LSTM_ONLY": 1,
    "TESSERACT_LSTM_COMBINED": 2,
    "DEFAULT": 3,
}

# Tesseract page segmentation modes (--psm)
PAGE_SEG_MODES = {
    "OSD_ONLY": 0,
    "AUTO_OSD": 1,
    "AUTO_ONLY": 2,
    "AUTO": 3,
    "SINGLE_COLUMN": 4,
    "SINGLE_BLOCK_VERT_TEXT": 5,
    "SINGLE_BLOCK": 6,
    "SINGLE_LINE": 7,
    "SINGLE_WORD": 8,
    "CIRCLE_WORD": 9,
    "SINGLE_CHAR": 10,
    "SPARSE_TEXT": 11,
    "SPARSE_TEXT_OSD": 12,
    "RAW_LINE": 13,
}

DEFAULT_EPUB_CSS = """body {
    font-family: Georgia, serif;
    line-height: 1.6;
    margin: 20px;
    text-align: justify;
}

h1, h2, h3 {
    color: #333;
    border-bottom: 2px solid #333;
    padding-bottom: 10px;
    margin-top: 30px;
    margin-bottom: 20px;
}

p {
    margin-bottom: 15px;
    text-indent: 20px;
}

.page-break {
    page-break-before: always;
}
"""


def _require_positive(section: str, **values: float) -> None:
    for name, value in values.items():
        if value <= 0:
            raise ConfigurationError(f"{section}.{name} must be > 0, got {value}")


@dataclass(frozen=True)
class OCRConfig:
    """OCR engine settings.

    Attributes:
        languages: Tesseract language set, e.g. 'por+eng'
        engine: Engine mode name (see ENGINE_MODES)
        page_seg_mode: Page segmentation mode name (see PAGE_SEG_MODES)
        dpi: Resolution hint passed to the engine
        preserve_spaces: Keep runs of spaces between words
        whitelist: Allowed characters (empty = all)
    """

    languages: str = "por+eng"
    engine: str = "LSTM_ONLY"
    page_seg_mode: str = "AUTO"
    dpi: int = 300
    preserve_spaces: bool = True
    whitelist: str = ""

    def __post_init__(self) -> None:
        if not LANGUAGE_SET_PATTERN.match(self.languages or ""):
            raise ConfigurationError(f"Invalid OCR language set: {self.languages!r}")
        if self.engine not in ENGINE_MODES:
            raise ConfigurationError(
                f"Unknown OCR engine {self.engine!r}. Valid: {sorted(ENGINE_MODES)}"
            )
        if self.page_seg_mode not in PAGE_SEG_MODES:
            raise ConfigurationError(
                f"Unknown page segmentation mode {self.page_seg_mode!r}. "
                f"Valid: {sorted(PAGE_SEG_MODES)}"
            )
        _require_positive("ocr", dpi=self.dpi)

    @property
    def language_list(self) -> list[str]:
        return self.languages.split("+")


@dataclass(frozen=True)
class RasterConfig:
    """PDF to image conversion settings."""

    density: int = 300
    format: str = "png"
    width: int = 2480  # A4 at 300 DPI
    height: int = 3508
    quality: int = 100

    def __post_init__(self) -> None:
        _require_positive(
            "raster", density=self.density, width=self.width, height=self.height
        )
        if self.format not in ("png", "jpeg", "jpg"):
            raise ConfigurationError(f"Unsupported raster format: {self.format!r}")


@dataclass(frozen=True)
class EnhanceConfig:
    """Image enhancement applied before OCR.

    brightness and contrast are multipliers (1.0 = unchanged).
    sharpen_sigma of 0 disables sharpening.
    """

    width: int = 2480
    height: int = 3508
    greyscale: bool = True
    normalize: bool = True
    sharpen_sigma: float = 1.2
    brightness: float = 1.1
    contrast: float = 1.2
    quality: int = 100

    def __post_init__(self) -> None:
        _require_positive(
            "enhance",
            width=self.width,
            height=self.height,
            brightness=self.brightness,
            contrast=self.contrast,
        )
        if self.sharpen_sigma < 0:
            raise ConfigurationError(
                f"enhance.sharpen_sigma must be >= 0, got {self.sharpen_sigma}"
            )


@dataclass(frozen=True)
class TextPDFConfig:
    """Geometry and typography of the paginated text PDF (points)."""

    font: str = "Times-Roman"
    font_size: float = 12
    line_height: float = 1.2
    margin: float = 50
    page_width: float = 595.28  # A4
    page_height: float = 841.89
    color: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "color", tuple(self.color))
        if len(self.color) != 3 or not all(0 <= c <= 1 for c in self.color):
            raise ConfigurationError(f"text_pdf.color must be 3 values in [0, 1], got {self.color}")
        # Raises ConfigurationError on bad geometry
        self.geometry

    @property
    def geometry(self) -> LayoutGeometry:
        return LayoutGeometry(
            page_width=self.page_width,
            page_height=self.page_height,
            margin=self.margin,
            font_size=self.font_size,
            line_height_multiplier=self.line_height,
        )


@dataclass(frozen=True)
class EPUBConfig:
    """EPUB metadata and presentation."""

    language: str = "pt"
    css: str = DEFAULT_EPUB_CSS
    toc_title: str = "Índice"
    chapter_title: str = "Page {number}"
    author: str = "Converted via OCR"
    publisher: str = "scanbook"

    def __post_init__(self) -> None:
        if "{number}" not in self.chapter_title:
            raise ConfigurationError("epub.chapter_title must contain '{number}'")
        try:
            self.chapter_title.format(number=1)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"epub.chapter_title {self.chapter_title!r} is not a valid format string: {e!r}"
            ) from e


@dataclass(frozen=True)
class DirectoryConfig:
    """Working directories. temp is wiped at the end of every run."""

    temp: Path = Path("./temp")
    output: Path = Path("./output")

    def __post_init__(self) -> None:
        object.__setattr__(self, "temp", Path(self.temp))
        object.__setattr__(self, "output", Path(self.output))
        if self.temp.resolve() == self.output.resolve():
            raise ConfigurationError("temp and output directories must differ")


@dataclass(frozen=True)
class PerformanceConfig:
    """Concurrency and per-page time limits.

    Attributes:
        max_concurrent_pages: Worker pool size (1 = strictly sequential)
        timeout: Per-page processing limit in seconds
    """

    max_concurrent_pages: int = 1
    timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.max_concurrent_pages < 1:
            raise ConfigurationError(
                f"performance.max_concurrent_pages must be >= 1, got {self.max_concurrent_pages}"
            )
        _require_positive("performance", timeout=self.timeout)


@dataclass(frozen=True)
class LoggingConfig:
    """Console reporting."""

    level: str = "info"
    show_progress: bool = True
    show_preview: bool = True
    max_preview_length: int = 100

    def __post_init__(self) -> None:
        if self.level.lower() not in ("debug", "info", "warning", "warn", "error"):
            raise ConfigurationError(f"Unknown logging level: {self.level!r}")


@dataclass(frozen=True)
class AdvancedConfig:
    """Behavioural switches.

    Attributes:
        cleanup_temp_files: Remove the temp directory at the end of the run
        skip_empty_pages: Drop pages whose recognized text is blank
        min_confidence: Pages below this OCR confidence are reported, not dropped
    """

    cleanup_temp_files: bool = True
    skip_empty_pages: bool = True
    min_confidence: float = 30.0

    def __post_init__(self) -> None:
        if not 0 <= self.min_confidence <= 100:
            raise ConfigurationError(
                f"advanced.min_confidence must be in [0, 100], got {self.min_confidence}"
            )


_SECTIONS: dict[str, type] = {
    "ocr": OCRConfig,
    "raster": RasterConfig,
    "enhance": EnhanceConfig,
    "text_pdf": TextPDFConfig,
    "epub": EPUBConfig,
    "directories": DirectoryConfig,
    "performance": PerformanceConfig,
    "logging": LoggingConfig,
    "advanced": AdvancedConfig,
}


@dataclass(frozen=True)
class ConverterConfig:
    """Complete converter configuration.

    Usage:
        config = ConverterConfig.from_dict(
            {"ocr": {"languages": "eng"}, "directories": {"output": "./out"}},
            preset="fast",
        )
    """

    ocr: OCRConfig = field(default_factory=OCRConfig)
    raster: RasterConfig = field(default_factory=RasterConfig)
    enhance: EnhanceConfig = field(default_factory=EnhanceConfig)
    text_pdf: TextPDFConfig = field(default_factory=TextPDFConfig)
    epub: EPUBConfig = field(default_factory=EPUBConfig)
    directories: DirectoryConfig = field(default_factory=DirectoryConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    @classmethod
    def from_dict(
        cls,
        overrides: dict[str, Any] | None = None,
        preset: str | None = None,
    ) -> "ConverterConfig":
        """Build a config from defaults, an optional preset and overrides.

        Args:
            overrides: Nested dict of section -> field -> value
            preset: Name of an entry in PRESETS, applied before overrides

        Raises:
            ConfigurationError: Unknown preset, section or field, or invalid values
        """
        data = cls().to_dict()

        if preset is not None:
            if preset not in PRESETS:
                raise ConfigurationError(
                    f"Unknown preset {preset!r}. Available: {', '.join(sorted(PRESETS))}"
                )
            data = deep_merge(data, PRESETS[preset])

        if overrides:
            data = deep_merge(data, overrides)

        sections = {}
        for name, values in data.items():
            section_cls = _SECTIONS.get(name)
            if section_cls is None:
                raise ConfigurationError(f"Unknown configuration section: {name!r}")
            try:
                sections[name] = section_cls(**values)
            except TypeError as e:
                raise ConfigurationError(f"Invalid keys in section {name!r}: {e}") from e

        return cls(**sections)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge overrides into a copy of base."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


PRESETS: dict[str, dict[str, Any]] = {
    # Maximum quality (slower)
    "high_quality": {
        "raster": {"density": 400, "width": 3300, "height": 4677},
        "enhance": {
            "width": 3300,
            "height": 4677,
            "brightness": 1.05,
            "contrast": 1.15,
            "sharpen_sigma": 0.8,
        },
    },
    # Faster processing, lower quality
    "fast": {
        "raster": {"density": 200, "width": 1654, "height": 2339},
        "enhance": {
            "width": 1654,
            "height": 2339,
            "brightness": 1.2,
            "contrast": 1.3,
            "sharpen_sigma": 1.5,
        },
        "performance": {"timeout": 120.0},
    },
    "portuguese": {"ocr": {"languages": "por"}},
    "english": {"ocr": {"languages": "eng"}},
    "multilingual": {"ocr": {"languages": "por+eng+spa+fra+ita"}},
}
