"""
PdfEbook - Python package for converting PDF files into e-books

This package turns a PDF into a reflow-free e-book: every page is rendered
to an image, optionally recognized with OCR, and packaged as EPUB, or
converted onwards to MOBI, AZW3 or an image-only PDF.
"""

import locale
import sys

__version__ = "1.0.0"
__license__ = "GPL-3.0"


def setup_locale() -> None:
    """Initialize the process locale."""
    try:
        locale.setlocale(locale.LC_ALL, "")
        # Keep LC_NUMERIC as C: onnxruntime/RapidOCR expect a dot decimal separator
        locale.setlocale(locale.LC_NUMERIC, "C")
    except locale.Error:
        locale.setlocale(locale.LC_ALL, "C")


def _check_ocr_dependencies() -> tuple[bool, str]:
    """Check whether the OCR backend can be imported.

    Returns:
        Tuple of (success, error_message). If success is True, error_message is empty.
    """
    try:
        from rapidocr import RapidOCR  # noqa: F401

        return True, ""
    except ImportError as e:
        return False, f"RapidOCR is not available ({e}); scanned documents will have no text layer"


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the command-line application.

    Returns:
        The application exit code.
    """
    setup_locale()

    from pdfebook.cli import main as cli_main

    return cli_main(argv)


__all__ = ["main", "setup_locale", "__version__", "__license__"]


if __name__ == "__main__":
    sys.exit(main())
