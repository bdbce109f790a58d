#!/usr/bin/env python3
"""
PdfEbook CLI - convert PDF files into e-books from the terminal.

Usage:
    pdfebook-cli <command> [options]

Commands:
    convert     Convert one or more PDFs to EPUB, MOBI, AZW3 or PDF
    info        Show PDF metadata, page count and scanned classification

Examples:
    # Basic conversion (writes book.epub next to book.pdf)
    pdfebook-cli convert book.pdf

    # Kindle format with smaller images
    pdfebook-cli convert book.pdf -o book.azw3 --format azw3 --quality 70

    # Shrink for device sync, 10 MB target
    pdfebook-cli convert scan.pdf --sync --sync-target 10

    # Batch conversion into a folder, two files at a time
    pdfebook-cli convert a.pdf b.pdf c.pdf -o books/ --jobs 2

    # Info
    pdfebook-cli info document.pdf
"""

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from pdfebook.services.conversion_config import (
    SYNC_TARGET_CHOICES,
    CompressionLevel,
    ConversionConfig,
    MemoryProfile,
    OutputFormat,
)
from pdfebook.utils.i18n import _

# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _choices(enum_type) -> list[str]:
    return [member.value for member in enum_type]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="pdfebook-cli",
        description="PdfEbook - PDF to e-book converter.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help=_("Verbose logging (DEBUG)"))
    p.add_argument(
        "--settings",
        type=Path,
        default=None,
        help=_("Settings file with default conversion options (JSON)"),
    )

    sub = p.add_subparsers(dest="command", help=_("Available commands"))

    # --- convert ---
    conv_p = sub.add_parser("convert", help=_("Convert PDF files to e-books"))
    conv_p.add_argument("inputs", type=Path, nargs="+", help=_("Input PDF file(s)"))
    conv_p.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help=_("Output file (single input) or folder (several inputs)"),
    )
    conv_p.add_argument(
        "-f",
        "--format",
        dest="output_format",
        choices=_choices(OutputFormat),
        default=None,
        help=_("Output format. Default: epub."),
    )
    conv_p.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=1,
        help=_("Files converted in parallel (batch mode). Default: 1."),
    )

    img_g = conv_p.add_argument_group(_("Images"))
    img_g.add_argument(
        "--quality", dest="image_quality", type=int, default=None, help=_("JPEG quality 0-100")
    )
    img_g.add_argument(
        "--max-width",
        dest="image_max_width",
        type=int,
        default=None,
        help=_("Maximum page image width in pixels"),
    )
    img_g.add_argument(
        "--compression",
        dest="compression_level",
        choices=_choices(CompressionLevel),
        default=None,
        help=_("Compression level"),
    )
    img_g.add_argument(
        "--grayscale",
        action="store_true",
        default=None,
        help=_("Convert page images to grayscale"),
    )

    content_g = conv_p.add_argument_group(_("Content"))
    content_g.add_argument(
        "--no-text-layer",
        dest="include_metadata",
        action="store_false",
        default=None,
        help=_("Do not embed page text as an invisible layer"),
    )
    content_g.add_argument(
        "--no-annotations",
        dest="preserve_annotations",
        action="store_false",
        default=None,
        help=_("Do not add annotation layers"),
    )
    content_g.add_argument(
        "--no-device-optimization",
        dest="optimize_for_device",
        action="store_false",
        default=None,
        help=_("Skip fixed-layout hints and the device size check"),
    )
    content_g.add_argument(
        "--max-size",
        dest="max_file_size_mb",
        type=int,
        default=None,
        help=_("Warn when the output exceeds this size in MB. Default: 650."),
    )

    ocr_g = conv_p.add_argument_group(_("OCR"))
    ocr_g.add_argument(
        "--ocr", dest="enable_ocr", action="store_true", default=None, help=_("Enable OCR")
    )
    ocr_g.add_argument(
        "--no-auto-detect",
        dest="auto_detect_scanned",
        action="store_false",
        default=None,
        help=_("Do not run OCR automatically on scanned documents"),
    )
    ocr_g.add_argument(
        "--language",
        dest="ocr_languages",
        type=str,
        default=None,
        help=_("OCR languages joined with '+' (e.g. 'eng+por'). Default: eng."),
    )

    perf_g = conv_p.add_argument_group(_("Size and performance"))
    perf_g.add_argument(
        "--sync",
        dest="optimize_for_sync",
        action="store_true",
        default=None,
        help=_("Shrink the book for device sync"),
    )
    perf_g.add_argument(
        "--sync-target",
        dest="sync_target_size",
        choices=list(SYNC_TARGET_CHOICES),
        default=None,
        help=_("Sync target size in MB, 'auto' or 'no-limit'. Default: auto."),
    )
    perf_g.add_argument(
        "--memory-profile",
        dest="memory_profile",
        choices=_choices(MemoryProfile),
        default=None,
        help=_("Rasterizer memory profile. Default: balanced."),
    )

    # --- info ---
    info_p = sub.add_parser("info", help=_("Show PDF metadata and page count"))
    info_p.add_argument("input", type=Path, help=_("Input PDF file"))

    return p


_OPTION_KEYS = (
    "image_quality",
    "image_max_width",
    "compression_level",
    "grayscale",
    "preserve_annotations",
    "include_metadata",
    "enable_ocr",
    "ocr_languages",
    "auto_detect_scanned",
    "output_format",
    "optimize_for_sync",
    "sync_target_size",
    "memory_profile",
    "optimize_for_device",
    "max_file_size_mb",
)


def build_config(
    args: argparse.Namespace, defaults: dict[str, Any] | None = None
) -> ConversionConfig:
    """Merge explicit command-line options over stored defaults.

    Raises:
        ConfigError: If the merged options are invalid.
    """
    options = dict(defaults or {})
    for key in _OPTION_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            options[key] = value
    return ConversionConfig.from_dict(options)


def _output_for(
    args: argparse.Namespace, input_path: Path, config: ConversionConfig
) -> Path | None:
    """Resolve the output path of one input; None means next to the input."""
    if args.output is None:
        return None
    if len(args.inputs) > 1 or args.output.is_dir():
        return args.output / f"{input_path.stem}{config.output_format.extension}"
    return args.output


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _convert_one(args, input_path: Path, config: ConversionConfig, logger) -> int:
    """Convert a single file with its own converter instance."""
    from pdfebook.services.converter import EbookConverter
    from pdfebook.utils.exceptions import ConversionCancelled, PdfEbookError
    from pdfebook.utils.format_utils import (
        format_compression_ratio,
        format_elapsed_time,
        format_file_size,
    )

    converter = EbookConverter()
    single = len(args.inputs) == 1

    def progress_cb(event):
        if single:
            print(f"\r[{event.percent:5.1f}%] {event.stage:<32}", end="", flush=True)

    try:
        result = converter.convert(
            input_path,
            _output_for(args, input_path, config),
            config,
            on_progress=progress_cb,
        )
    except ConversionCancelled as e:
        if single:
            print()
        logger.warning(f"{input_path.name}: {e}")
        return 130
    except PdfEbookError as e:
        if single:
            print()
        logger.error(f"{input_path.name}: {e}")
        return 1

    if single:
        print()
    print(
        _("{name}: {fmt} {size}, {pages} pages, {ratio}, {elapsed}").format(
            name=result.output_path,
            fmt=result.format_name,
            size=format_file_size(result.output_size),
            pages=result.page_count,
            ratio=format_compression_ratio(result.compression_ratio),
            elapsed=format_elapsed_time(result.elapsed_seconds),
        )
    )
    if result.ocr_performed:
        print(_("  OCR confidence: {0:.1f}%").format(result.average_confidence))
    for warning in result.warnings:
        print(_("  Warning: {0}").format(warning))
    return 0


def _cmd_convert(args, logger) -> int:
    """Handle the 'convert' command."""
    from pdfebook.utils.config_manager import ConfigManager
    from pdfebook.utils.exceptions import ConfigError

    settings = ConfigManager(str(args.settings) if args.settings else None)
    try:
        config = build_config(args, settings.conversion_defaults())
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    missing = [p for p in args.inputs if not p.is_file()]
    for path in missing:
        print(f"Error: {path} not found", file=sys.stderr)
    inputs = [p for p in args.inputs if p.is_file()]

    if len(args.inputs) > 1 and args.output is not None:
        args.output.mkdir(parents=True, exist_ok=True)

    jobs = max(1, args.jobs)
    if jobs == 1 or len(inputs) <= 1:
        codes = [_convert_one(args, path, config, logger) for path in inputs]
    else:
        logger.info(f"Batch conversion: {len(inputs)} files, {jobs} at a time")
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            codes = list(executor.map(lambda p: _convert_one(args, p, config, logger), inputs))

    if missing or any(code == 1 for code in codes):
        return 1
    if any(code == 130 for code in codes):
        return 130
    return 0


def _cmd_info(args, logger) -> int:
    """Handle the 'info' command."""
    from pdfebook import _check_ocr_dependencies
    from pdfebook.services.ocr.detection import is_scanned_document
    from pdfebook.services.source_document import SourceDocument, extract_metadata
    from pdfebook.utils.exceptions import PdfEbookError
    from pdfebook.utils.format_utils import format_file_size

    try:
        with SourceDocument(args.input) as source:
            page_count = source.page_count
            scanned = is_scanned_document(source)
            size = source.size_bytes
    except PdfEbookError as e:
        logger.error(str(e))
        return 1

    meta = extract_metadata(args.input)
    ocr_ok, ocr_error = _check_ocr_dependencies()

    print(f"File:       {args.input}")
    print(f"Pages:      {page_count}")
    print(f"Size:       {format_file_size(size)} ({size:,} bytes)")
    print(f"Scanned:    {'Yes' if scanned else 'No'}")
    print(f"Title:      {meta.title}")
    print(f"Author:     {meta.author}")
    if meta.subject:
        print(f"Subject:    {meta.subject}")
    if meta.keywords:
        print(f"Keywords:   {meta.keywords}")
    print(f"Creator:    {meta.creator}")
    print(f"Producer:   {meta.producer}")
    print(f"Created:    {meta.creation_date}")
    print(f"Modified:   {meta.modification_date}")
    if scanned and not ocr_ok:
        print(f"Note:       {ocr_error}")
    return 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )
    logger = logging.getLogger("pdfebook.cli")

    if hasattr(args, "input") and args.input and not args.input.exists():
        print(f"Error: {args.input} not found", file=sys.stderr)
        return 1

    handlers = {
        "convert": _cmd_convert,
        "info": _cmd_info,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, logger)
    except KeyboardInterrupt:
        print()
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
