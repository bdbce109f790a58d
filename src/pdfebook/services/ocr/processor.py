"""
OCR Processor - page-by-page recognition of a scanned document.

Pages are rendered at OCR density, cleaned up with Pillow (grayscale,
autocontrast, sharpen) and fed to the run's OCREngine. Cancellation is
checked between pages.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from PIL import Image, ImageFilter, ImageOps

from pdfebook.constants import OCR_RENDER_DPI
from pdfebook.services.ocr.engine import OCREngine
from pdfebook.services.source_document import PDF_READ_ERRORS, SourceDocument
from pdfebook.utils.exceptions import ConversionCancelled

logger = logging.getLogger(__name__)

# (pages_done, total_pages)
PageCallback = Callable[[int, int], None]


@dataclass
class OCRPageResult:
    page_number: int
    text: str = ""
    confidence: float = 0.0


@dataclass
class OCRRun:
    """Recognition results for a whole document."""

    pages: list[OCRPageResult] = field(default_factory=list)
    full_text: str = ""
    average_confidence: float = 0.0

    def text_for(self, page_number: int) -> str:
        """Recognized text of a 1-based page, empty when unknown."""
        index = page_number - 1
        if 0 <= index < len(self.pages):
            return self.pages[index].text
        return ""

    def confidence_for(self, page_number: int) -> float:
        index = page_number - 1
        if 0 <= index < len(self.pages):
            return self.pages[index].confidence
        return 0.0


def average_confidence(confidences: Sequence[float]) -> float:
    """Mean page confidence; pages without text count as zero."""
    if not confidences:
        return 0.0
    return sum(confidences) / len(confidences)


def preprocess_for_ocr(image: Image.Image) -> Image.Image:
    """Grayscale, stretch contrast and sharpen a page image."""
    gray = ImageOps.grayscale(image)
    gray = ImageOps.autocontrast(gray, cutoff=1)
    return gray.filter(ImageFilter.SHARPEN)


class OCRProcessor:
    """Runs an OCREngine over every page of a SourceDocument."""

    def __init__(self, engine: OCREngine, dpi: int = OCR_RENDER_DPI) -> None:
        self.engine = engine
        self.dpi = dpi

    def process(
        self,
        source: SourceDocument,
        languages: Sequence[str],
        on_page: PageCallback | None = None,
    ) -> OCRRun:
        """Recognize all pages.

        Raises:
            OCRError: If the engine cannot be initialized.
            ConversionCancelled: If the engine was cancelled between pages.
        """
        self.engine.initialize(languages)
        total = source.page_count
        pages: list[OCRPageResult] = []

        for index in range(total):
            if self.engine.cancelled:
                raise ConversionCancelled(stage="ocr")

            page_number = index + 1
            try:
                image = preprocess_for_ocr(source.render_page(index, self.dpi))
            except PDF_READ_ERRORS as e:
                logger.warning(f"OCR page {page_number}/{total}: cannot render page: {e}")
                pages.append(OCRPageResult(page_number))
            else:
                text, confidence = self.engine.recognize_page(image)
                pages.append(OCRPageResult(page_number, text, confidence))
                logger.debug(
                    f"OCR page {page_number}/{total}: {len(text)} chars, {confidence:.1f}%"
                )

            if on_page:
                on_page(page_number, total)

        run = OCRRun(
            pages=pages,
            full_text="\n\n".join(p.text for p in pages if p.text),
            average_confidence=average_confidence([p.confidence for p in pages]),
        )
        logger.info(
            f"OCR finished: {total} pages, average confidence {run.average_confidence:.1f}%"
        )
        return run
