"""
scanbook - Convert image-only PDFs to a text PDF and an EPUB

Pipeline:
1. Render PDF pages to images (pdf2image / poppler)
2. Enhance each page image (Pillow)
3. Run OCR on each page (Tesseract via pytesseract)
4. Lay out the recognized text into a paginated text PDF (reportlab)
5. Build an EPUB with one chapter per page
"""

__version__ = "1.0.0"

from .config import PRESETS, ConverterConfig
from .errors import (
    CollaboratorUnavailable,
    ConfigurationError,
    EmissionError,
    PageProcessingError,
    PageTimeoutError,
    RunCancelled,
    ScanbookError,
)
from .layout import LayoutGeometry, layout
from .ocr import RecognitionResult, WordBox
from .pipeline import ConversionResult, DocumentConverter, RunState

__all__ = [
    "CollaboratorUnavailable",
    "ConfigurationError",
    "ConversionResult",
    "ConverterConfig",
    "DocumentConverter",
    "EmissionError",
    "LayoutGeometry",
    "PRESETS",
    "PageProcessingError",
    "PageTimeoutError",
    "RecognitionResult",
    "RunCancelled",
    "RunState",
    "ScanbookError",
    "WordBox",
    "layout",
]
