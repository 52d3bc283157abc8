"""
Image enhancement before OCR: resize, greyscale, normalize, sharpen,
brightness and contrast.
"""

import logging
from pathlib import Path

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from .config import EnhanceConfig

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = "_processed"


def processed_path_for(raster_path: Path) -> Path:
    """Processed image path for a raster page (same directory, disjoint name)."""
    return raster_path.with_name(f"{raster_path.stem}{PROCESSED_SUFFIX}.png")


class ImageEnhancer:
    """Applies the configured filter chain to page images."""

    def __init__(self, config: EnhanceConfig) -> None:
        self.config = config

    def _resize(self, img: Image.Image, size: tuple[int, int]) -> Image.Image:
        """Scale to cover size and centre-crop, keeping the aspect ratio."""
        if img.size == size:
            return img
        return ImageOps.fit(img, size, method=Image.LANCZOS)

    def apply(
        self,
        img: Image.Image,
        brightness: float | None = None,
        contrast: float | None = None,
        size: tuple[int, int] | None = None,
    ) -> Image.Image:
        """Run the filter chain on an in-memory image.

        Args:
            img: Source image
            brightness: Override for the configured brightness multiplier
            contrast: Override for the configured contrast multiplier
            size: Override for the configured (width, height)

        Returns:
            Enhanced image (mode 'L' when greyscale is enabled, else 'RGB')
        """
        cfg = self.config

        img = self._resize(img, size or (cfg.width, cfg.height))
        img = ImageOps.grayscale(img) if cfg.greyscale else img.convert("RGB")

        if cfg.normalize:
            img = ImageOps.autocontrast(img)

        if cfg.sharpen_sigma > 0:
            img = img.filter(ImageFilter.UnsharpMask(radius=cfg.sharpen_sigma, percent=150, threshold=0))

        img = ImageEnhance.Brightness(img).enhance(brightness or cfg.brightness)
        img = ImageEnhance.Contrast(img).enhance(contrast or cfg.contrast)
        return img

    def enhance(
        self,
        raster_path: Path,
        brightness: float | None = None,
        contrast: float | None = None,
        size: tuple[int, int] | None = None,
    ) -> Path:
        """Enhance a page image file.

        Args:
            raster_path: Rendered page image
            brightness: Optional brightness override
            contrast: Optional contrast override
            size: Optional (width, height) override

        Returns:
            Path of the processed PNG, next to the input
        """
        output_path = processed_path_for(raster_path)
        logger.debug(f"Preprocessing image: {raster_path.name}")

        with Image.open(raster_path) as img:
            processed = self.apply(img, brightness=brightness, contrast=contrast, size=size)
            processed.save(output_path, "PNG")

        return output_path
