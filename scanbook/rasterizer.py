"""
PDF rasterization: render each page of a source PDF to an image file.

Uses pdf2image (poppler's pdftoppm). The images are written to the run's
temporary directory; ownership of each file passes to the page pipeline,
which deletes it once the page has been recognized.
"""

import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

from pdf2image import convert_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from .config import RasterConfig
from .errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

REQUIRED_BINARIES = ("pdftoppm", "pdfinfo")


@dataclass(frozen=True)
class RasterPageRef:
    """A rendered page image owned by the pipeline."""

    index: int  # zero-based page index in the source document
    path: Path


def _install_hints() -> list[str]:
    if sys.platform == "darwin":
        return ["brew install poppler"]
    if sys.platform.startswith("linux"):
        return [
            "sudo apt-get update && sudo apt-get install -y poppler-utils",
            "# RPM: sudo dnf install poppler-utils",
        ]
    return ["choco install poppler -y", "# or: scoop install poppler"]


def check_binaries() -> dict[str, bool]:
    """Verify the poppler tools are on PATH.

    Returns:
        Mapping of binary name -> found

    Raises:
        CollaboratorUnavailable: Any required binary is missing
    """
    found = {name: shutil.which(name) is not None for name in REQUIRED_BINARIES}
    if not all(found.values()):
        status = ", ".join(
            f"{name}: {'FOUND' if ok else 'MISSING'}" for name, ok in found.items()
        )
        raise CollaboratorUnavailable(
            f"Could not find required native tools for PDF to image conversion ({status}).",
            hints=_install_hints(),
        )
    return found


class PDFRasterizer:
    """Renders PDF pages to images."""

    def __init__(self, config: RasterConfig) -> None:
        self.config = config

    def rasterize(self, source: Path, output_dir: Path) -> list[RasterPageRef]:
        """Render every page of source into output_dir.

        Args:
            source: PDF file
            output_dir: Directory for page images (created if missing)

        Returns:
            Page references in page order

        Raises:
            CollaboratorUnavailable: poppler is not installed
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"Converting PDF to images: dpi={self.config.density}, "
            f"size={self.config.width}x{self.config.height}"
        )

        try:
            paths = convert_from_path(
                str(source),
                dpi=self.config.density,
                output_folder=str(output_dir),
                fmt=self.config.format,
                output_file="page",
                paths_only=True,
                size=(self.config.width, self.config.height),
            )
        except PDFInfoNotInstalledError as e:
            raise CollaboratorUnavailable(
                "Could not find poppler (pdfinfo/pdftoppm) for PDF to image conversion.",
                hints=_install_hints(),
            ) from e
        except (PDFPageCountError, PDFSyntaxError) as e:
            raise ValueError(f"Could not read PDF {source}: {e}") from e

        pages = [RasterPageRef(index=i, path=Path(p)) for i, p in enumerate(paths)]
        logger.info(f"Converted {len(pages)} pages to images")
        return pages
