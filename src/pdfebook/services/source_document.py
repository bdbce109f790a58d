"""
PdfEbook - Source Document Service

Access to the input PDF: page count, extractable text, page rendering
(PyMuPDF) and the bibliographic record stored in the document info
dictionary (pikepdf).
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import fitz
import numpy as np
import pikepdf
from PIL import Image
from pymupdf.mupdf import FzErrorBase

from pdfebook.config import APP_PUBLISHER
from pdfebook.constants import PDF_POINTS_PER_INCH
from pdfebook.utils.exceptions import ConversionIOError

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Unknown Author"

# Errors PyMuPDF raises for damaged files and pages
PDF_READ_ERRORS: tuple[type[Exception], ...] = (RuntimeError, ValueError, OSError, FzErrorBase)

_PDF_DATE_RE = re.compile(
    r"^D?:?(?P<year>\d{4})(?P<month>\d{2})?(?P<day>\d{2})?"
    r"(?P<hour>\d{2})?(?P<minute>\d{2})?(?P<second>\d{2})?"
)


@dataclass
class DocumentMetadata:
    """Bibliographic record of the source document."""

    title: str
    author: str = DEFAULT_AUTHOR
    subject: str = ""
    keywords: str = ""
    creator: str = APP_PUBLISHER
    producer: str = APP_PUBLISHER
    creation_date: str = ""
    modification_date: str = ""


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat()


def parse_pdf_date(raw: str) -> str | None:
    """Convert a PDF date string (``D:YYYYMMDDHHmmSS...``) to ISO-8601.

    Returns None when the string carries no usable date.
    """
    match = _PDF_DATE_RE.match(raw.strip())
    if not match:
        return None

    parts = match.groupdict()
    try:
        parsed = datetime(
            int(parts["year"]),
            int(parts["month"] or 1),
            int(parts["day"] or 1),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
        )
    except ValueError:
        return None
    return parsed.isoformat()


def _docinfo_text(docinfo: pikepdf.Dictionary, key: str) -> str:
    if key not in docinfo:
        return ""
    return str(docinfo[key]).strip()


def extract_metadata(pdf_path: str | Path, default_title: str | None = None) -> DocumentMetadata:
    """Read the document info dictionary, filling gaps with defaults.

    A PDF whose info dictionary cannot be read still converts; its record
    falls back to the file stem and the defaults.
    """
    pdf_path = Path(pdf_path)
    title = default_title or pdf_path.stem
    now = _now_iso()
    metadata = DocumentMetadata(title=title, creation_date=now, modification_date=now)

    try:
        with pikepdf.open(pdf_path) as pdf:
            docinfo = pdf.docinfo
            metadata.title = _docinfo_text(docinfo, "/Title") or title
            metadata.author = _docinfo_text(docinfo, "/Author") or DEFAULT_AUTHOR
            metadata.subject = _docinfo_text(docinfo, "/Subject")
            metadata.keywords = _docinfo_text(docinfo, "/Keywords")
            metadata.creator = _docinfo_text(docinfo, "/Creator") or APP_PUBLISHER
            metadata.producer = _docinfo_text(docinfo, "/Producer") or APP_PUBLISHER
            metadata.creation_date = (
                parse_pdf_date(_docinfo_text(docinfo, "/CreationDate")) or now
            )
            metadata.modification_date = (
                parse_pdf_date(_docinfo_text(docinfo, "/ModDate")) or now
            )
    except (pikepdf.PdfError, OSError) as e:
        logger.warning(f"Could not read document info from {pdf_path.name}: {e}")

    return metadata


def render_page(page: "fitz.Page", dpi: int) -> Image.Image:
    """Render a PDF page to an RGB Pillow image at the given density."""
    zoom = dpi / PDF_POINTS_PER_INCH
    pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False, colorspace=fitz.csRGB)
    array = np.frombuffer(pixmap.samples, dtype=np.uint8)
    array = array.reshape(pixmap.height, pixmap.width, pixmap.n)
    if pixmap.n == 4:
        array = array[..., :3]
    return Image.fromarray(array)


def open_pdf(pdf_path: str | Path) -> "fitz.Document":
    """Open a PDF with PyMuPDF.

    Raises:
        ConversionIOError: If the file is missing or is not a readable PDF.
    """
    try:
        return fitz.open(str(pdf_path))
    except PDF_READ_ERRORS as e:
        raise ConversionIOError(str(pdf_path), "open", str(e)) from e


class SourceDocument:
    """Open handle on the input PDF, owned by one conversion run.

    Use as a context manager; the PyMuPDF document is closed on exit.
    """

    def __init__(self, pdf_path: str | Path) -> None:
        self.path = Path(pdf_path)
        self._doc: fitz.Document | None = None

    def open(self) -> "SourceDocument":
        if self._doc is None:
            self._doc = open_pdf(self.path)
            logger.info(f"Opened {self.path.name}: {self._doc.page_count} pages")
        return self

    def close(self) -> None:
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    def __enter__(self) -> "SourceDocument":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def document(self) -> "fitz.Document":
        if self._doc is None:
            raise RuntimeError("SourceDocument is not open")
        return self._doc

    @property
    def page_count(self) -> int:
        return self.document.page_count

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size

    def page_text(self, index: int) -> str:
        """Return the extractable text of page *index* (0-based)."""
        return self.document[index].get_text("text")

    def render_page(self, index: int, dpi: int) -> Image.Image:
        """Render page *index* (0-based) to an RGB image."""
        return render_page(self.document[index], dpi)
