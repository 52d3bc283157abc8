#!/usr/bin/env python3
"""
Command-line interface for scanbook.

Usage:
    # Convert an image-only PDF into <name>_text.pdf and <name>.epub
    scanbook convert ./scan.pdf --output ./output --lang eng

    # Use a preset and a JSON file of overrides
    scanbook convert ./scan.pdf --preset fast --config ./settings.json

    # Check that poppler and tesseract are installed
    scanbook doctor

    # List configuration presets
    scanbook presets
"""

import argparse
import json
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def build_overrides(args: argparse.Namespace) -> dict:
    """Merge --config file contents with individual command-line flags."""
    from .config import deep_merge

    overrides: dict = {}
    if args.config:
        config_path = Path(args.config)
        overrides = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(overrides, dict):
            raise ValueError(f"{config_path} must contain a JSON object")

    flags: dict = {}
    if args.output:
        flags.setdefault("directories", {})["output"] = args.output
    if args.temp:
        flags.setdefault("directories", {})["temp"] = args.temp
    if args.lang:
        flags.setdefault("ocr", {})["languages"] = args.lang
    if args.concurrency is not None:
        flags.setdefault("performance", {})["max_concurrent_pages"] = args.concurrency
    if args.timeout is not None:
        flags.setdefault("performance", {})["timeout"] = args.timeout
    if args.keep_empty:
        flags.setdefault("advanced", {})["skip_empty_pages"] = False
    if args.keep_temp:
        flags.setdefault("advanced", {})["cleanup_temp_files"] = False
    if args.no_progress:
        flags.setdefault("logging", {})["show_progress"] = False
    if getattr(args, "verbose", False):
        flags.setdefault("logging", {})["level"] = "debug"

    return deep_merge(overrides, flags)


def cmd_convert(args: argparse.Namespace) -> int:
    """Run the full conversion."""
    from .config import ConverterConfig
    from .errors import ConfigurationError
    from .pipeline import DocumentConverter

    source = Path(args.input)
    if not source.is_file():
        print(f"✗ File not found: {source}", file=sys.stderr)
        return 1

    try:
        config = ConverterConfig.from_dict(build_overrides(args), preset=args.preset)
    except (ConfigurationError, ValueError, OSError) as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 1

    converter = DocumentConverter(config)
    result = converter.convert(source)

    if result.success:
        print(f"\n✓ Success: {result.message}")
        print(f"  Text PDF: {result.text_pdf_path}")
        print(f"  EPUB: {result.epub_path}")
        if result.report is not None and result.report.low_confidence_pages:
            pages = ", ".join(str(i + 1) for i in result.report.low_confidence_pages)
            print(f"\n⚠ Low OCR confidence on pages: {pages}")
        return 0

    print(f"\n✗ Failed: {result.message}", file=sys.stderr)
    for name, error in result.emission_errors.items():
        if error is not result.error:
            print(f"  {error}", file=sys.stderr)
    return 1


def cmd_doctor(args: argparse.Namespace) -> int:
    """Check native dependencies."""
    from .errors import CollaboratorUnavailable
    from .ocr import check_available
    from .rasterizer import check_binaries

    ok = True
    try:
        check_binaries()
        print("✓ poppler (pdftoppm, pdfinfo) found")
    except CollaboratorUnavailable as e:
        print(f"✗ {e}", file=sys.stderr)
        ok = False

    try:
        version = check_available()
        print(f"✓ tesseract {version} found")
    except CollaboratorUnavailable as e:
        print(f"✗ {e}", file=sys.stderr)
        ok = False

    return 0 if ok else 1


def cmd_presets(args: argparse.Namespace) -> int:
    """List presets and what they change."""
    from .config import PRESETS

    for name, overrides in sorted(PRESETS.items()):
        print(f"{name}: {json.dumps(overrides)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="scanbook",
        description="Convert image-only PDFs to a text PDF and an EPUB via OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_convert = subparsers.add_parser(
        "convert",
        help="Convert a PDF: text PDF + EPUB",
        description="OCR every page of an image-only PDF and write a text PDF and an EPUB",
    )
    p_convert.add_argument("input", help="Source PDF file")
    p_convert.add_argument("-o", "--output", help="Output directory (default: ./output)")
    p_convert.add_argument("--temp", help="Temporary directory (default: ./temp)")
    p_convert.add_argument("-p", "--preset", help="Configuration preset (see 'scanbook presets')")
    p_convert.add_argument("-c", "--config", help="JSON file with configuration overrides")
    p_convert.add_argument("-l", "--lang", help="Tesseract languages, e.g. 'eng' or 'por+eng'")
    p_convert.add_argument("--concurrency", type=int, help="Pages processed at the same time")
    p_convert.add_argument("--timeout", type=float, help="Per-page timeout in seconds")
    p_convert.add_argument("--keep-empty", action="store_true", help="Keep pages with no recognized text")
    p_convert.add_argument("--keep-temp", action="store_true", help="Don't delete the temporary directory")
    p_convert.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    p_convert.set_defaults(func=cmd_convert)

    p_doctor = subparsers.add_parser("doctor", help="Check native dependencies")
    p_doctor.set_defaults(func=cmd_doctor)

    p_presets = subparsers.add_parser("presets", help="List configuration presets")
    p_presets.set_defaults(func=cmd_presets)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
