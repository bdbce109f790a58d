"""Scanned-document detection from the amount of extractable text."""

import logging

from pdfebook.constants import SCAN_SAMPLE_PAGES, SCAN_TEXT_THRESHOLD
from pdfebook.services.source_document import SourceDocument

logger = logging.getLogger(__name__)


def is_scanned_document(source: SourceDocument, sample_pages: int = SCAN_SAMPLE_PAGES) -> bool:
    """Classify a document as scanned when its first pages carry little text.

    Samples up to *sample_pages* pages; the document is scanned when the
    average extractable text per sampled page is below the threshold.
    An empty document is never scanned.
    """
    sampled = min(source.page_count, sample_pages)
    if sampled == 0:
        return False

    total_chars = sum(len(source.page_text(i).strip()) for i in range(sampled))
    average = total_chars / sampled
    scanned = average < SCAN_TEXT_THRESHOLD

    logger.info(
        f"Text sample: {total_chars} chars over {sampled} pages "
        f"(avg {average:.0f}) → {'scanned' if scanned else 'text'} document"
    )
    return scanned
