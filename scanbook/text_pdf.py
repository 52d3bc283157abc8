"""
Paginated text PDF output.

Line breaking and page breaking come entirely from the layout engine;
this module only measures text with the PDF font metrics and draws the
laid-out lines, one PDF page per laid-out page.
"""

import io
import logging
from pathlib import Path
from typing import Sequence

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from .config import TextPDFConfig
from .errors import ConfigurationError
from .layout import BLANK, MARKER, LaidOutDocument, MeasureWidth, layout
from .ocr import RecognitionResult
from .storage import OutputStore

logger = logging.getLogger(__name__)

BOLD_VARIANTS = {
    "Times-Roman": "Times-Bold",
    "Helvetica": "Helvetica-Bold",
    "Courier": "Courier-Bold",
}


class TextPDFEmitter:
    """Writes recognized text as a plain, paginated PDF."""

    def __init__(self, config: TextPDFConfig, skip_empty: bool = True) -> None:
        """Initialize emitter.

        Args:
            config: Page geometry and typography
            skip_empty: Leave out pages whose text is blank

        Raises:
            ConfigurationError: Unknown font name
        """
        self.config = config
        self.skip_empty = skip_empty
        self.geometry = config.geometry
        try:
            pdfmetrics.getFont(config.font)
        except KeyError as e:
            raise ConfigurationError(f"Unknown PDF font: {config.font!r}") from e
        self.heading_font = BOLD_VARIANTS.get(config.font, config.font)

    @property
    def measure_width(self) -> MeasureWidth:
        font = self.config.font

        def measure(text: str, font_size: float) -> float:
            return pdfmetrics.stringWidth(text, font, font_size)

        return measure

    def lay_out(self, results: Sequence[RecognitionResult]) -> LaidOutDocument:
        return layout(results, self.geometry, self.measure_width, skip_empty=self.skip_empty)

    def render(self, results: Sequence[RecognitionResult], title: str = "") -> bytes:
        """Render results to PDF bytes."""
        document = self.lay_out(results)
        cfg = self.config

        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(cfg.page_width, cfg.page_height))
        if title:
            pdf.setTitle(title)

        for page in document.pages:
            pdf.setFillColorRGB(*cfg.color)
            for line in page.lines:
                if line.kind == BLANK:
                    continue
                font = self.heading_font if line.kind == MARKER else cfg.font
                pdf.setFont(font, cfg.font_size)
                pdf.drawString(cfg.margin, line.y, line.text)
            pdf.showPage()

        pdf.save()
        logger.debug(f"Rendered text PDF: {document.page_count} pages, {document.line_count} lines")
        return buffer.getvalue()

    def emit(
        self,
        results: Sequence[RecognitionResult],
        store: OutputStore,
        output_path: Path,
    ) -> Path:
        """Render and write the text PDF."""
        data = self.render(results, title=output_path.stem)
        store.write_file(output_path, data)
        logger.info(f"Text PDF created: {output_path}")
        return output_path
