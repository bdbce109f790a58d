"""Pytest configuration for pdfebook tests.

Builds small PDFs on the fly with ReportLab (text documents and
image-only "scanned" documents) and provides fakes for the OCR backend
and the external format converter.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest
from PIL import Image, ImageDraw
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from pdfebook.services.format_converter import FormatConverter
from pdfebook.utils.exceptions import ExternalToolError

LOREM = (
    "The quick brown fox jumps over the lazy dog while the e-book converter "
    "renders every page of this document into an image for the reader."
)


def make_text_pdf(
    path: Path,
    num_pages: int = 3,
    title: str = "Sample Book",
    author: str = "Jane Writer",
    noise_images: bool = False,
) -> Path:
    """Create a PDF whose pages carry plenty of extractable text.

    With *noise_images* each page also embeds a distinct 600x600 noise
    image drawn in a small corner, which makes the PDF large without
    changing how the rendered page looks.
    """
    c = canvas.Canvas(str(path), pagesize=letter)
    c.setTitle(title)
    c.setAuthor(author)
    c.setSubject("Testing")
    c.setKeywords("pdf, ebook")
    rng = np.random.default_rng(42)
    for page in range(1, num_pages + 1):
        c.setFont("Helvetica", 11)
        c.drawString(72, 720, f"Page {page}")
        for line in range(6):
            c.drawString(72, 700 - line * 16, LOREM[: 90 - line])
        if noise_images:
            noise = rng.integers(0, 256, size=(600, 600, 3), dtype=np.uint8)
            c.drawImage(ImageReader(Image.fromarray(noise)), 10, 10, width=12, height=12)
        c.showPage()
    c.save()
    return path


def make_scanned_pdf(path: Path, num_pages: int = 2) -> Path:
    """Create an image-only PDF (no text layer), like a scanner would."""
    width, height = letter
    c = canvas.Canvas(str(path), pagesize=letter)
    for page in range(1, num_pages + 1):
        image = Image.new("RGB", (850, 1100), "white")
        draw = ImageDraw.Draw(image)
        for line in range(10):
            draw.text((60, 80 + line * 40), f"Scanned page {page} line {line}", fill="black")
        c.drawImage(ImageReader(image), 0, 0, width=width, height=height)
        c.showPage()
    c.save()
    return path


class FakeOCRResult:
    """Mimics the RapidOCR result object (boxes, txts, scores)."""

    def __init__(self, boxes, txts, scores):
        self.boxes = boxes
        self.txts = txts
        self.scores = scores


class FakeOCRBackend:
    """Returns the same two lines for every image."""

    def __init__(self, languages):
        self.languages = languages
        self.calls = 0

    def __call__(self, image):
        self.calls += 1
        return FakeOCRResult(
            boxes=[
                [[10, 10], [200, 10], [200, 30], [10, 30]],
                [[10, 50], [200, 50], [200, 70], [10, 70]],
            ],
            txts=["Recognized heading", "recognized body & text"],
            scores=[0.9, 0.8],
        )


class FakeFormatConverter(FormatConverter):
    """Stand-in for the external tool: writes a marker file or fails."""

    name = "fake-convert"

    def __init__(
        self, available: bool = True, fail: bool = False, error: Exception | None = None
    ) -> None:
        self.available = available
        self.fail = fail
        self.error = error
        self.calls: list[tuple[Path, Path, float]] = []

    def is_available(self) -> bool:
        return self.available

    def convert(self, source: Path, destination: Path, timeout: float) -> None:
        self.calls.append((source, destination, timeout))
        if self.error is not None:
            raise self.error
        if self.fail:
            raise ExternalToolError(self.name, "conversion failed", exit_code=1)
        destination.write_bytes(b"BOOKMOBI" + source.read_bytes()[:16])


@pytest.fixture
def text_pdf(tmp_path):
    return make_text_pdf(tmp_path / "sample.pdf")


@pytest.fixture
def scanned_pdf(tmp_path):
    return make_scanned_pdf(tmp_path / "scanned.pdf")


@pytest.fixture
def fake_ocr_factory():
    """Backend factory recording every backend it creates."""
    created: list[FakeOCRBackend] = []

    def factory(languages):
        backend = FakeOCRBackend(languages)
        created.append(backend)
        return backend

    factory.created = created
    return factory


@pytest.fixture
def isolated_tempdir(tmp_path, monkeypatch):
    """Point tempfile at an empty directory so leftovers can be detected."""
    base = tmp_path / "tmp"
    base.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(base))
    return base
