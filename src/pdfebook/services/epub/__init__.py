"""
EPUB package generation: content tree, archive packaging and output
format adaptation.
"""

from pdfebook.services.epub.content import (
    ContentGenerator,
    ManifestEntry,
    NavPoint,
    PackageTree,
    book_identifier,
    dc_language,
)
from pdfebook.services.epub.packaging import (
    AdaptResult,
    EpubPackager,
    FormatAdapter,
    write_image_pdf,
)

__all__ = [
    "AdaptResult",
    "ContentGenerator",
    "EpubPackager",
    "FormatAdapter",
    "ManifestEntry",
    "NavPoint",
    "PackageTree",
    "book_identifier",
    "dc_language",
    "write_image_pdf",
]
