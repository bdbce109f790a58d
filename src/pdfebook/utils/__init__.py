"""
PdfEbook - Utils Package

Utility modules for the application.
"""

from pdfebook.utils.format_utils import format_elapsed_time, format_file_size
from pdfebook.utils.i18n import _
from pdfebook.utils.logger import logger

__all__ = [
    "logger",
    "_",
    "format_file_size",
    "format_elapsed_time",
]
