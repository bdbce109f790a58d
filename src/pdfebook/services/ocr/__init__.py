"""
OCR subsystem: scanned-document detection, the RapidOCR engine lifecycle
and page-by-page recognition.
"""

from pdfebook.services.ocr.detection import is_scanned_document
from pdfebook.services.ocr.engine import OCREngine, OCREngineState
from pdfebook.services.ocr.processor import OCRPageResult, OCRProcessor, OCRRun

__all__ = [
    "OCREngine",
    "OCREngineState",
    "OCRPageResult",
    "OCRProcessor",
    "OCRRun",
    "is_scanned_document",
]
