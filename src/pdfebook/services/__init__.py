"""
PdfEbook - Services Package

Service modules for PDF to e-book conversion and its configuration.
"""

from pdfebook.services.conversion_config import ConversionConfig, OutputFormat
from pdfebook.services.converter import ConversionResult, EbookConverter

__all__ = ["ConversionConfig", "ConversionResult", "EbookConverter", "OutputFormat"]
