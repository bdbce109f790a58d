"""
PdfEbook - Page Rasterization Service

Renders every PDF page to an optimized JPEG for the e-book. Pages are
processed in sequential chunks; inside a chunk a bounded process pool
renders pages in parallel, each worker process holding its own PyMuPDF
document.
A page that fails to render is replaced by a placeholder so the artifact
list always has one entry per source page, in page order.
"""

import gc
import logging
import os
import signal
import threading
from collections.abc import Callable
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import fitz
from PIL import Image

from pdfebook.constants import MIN_PAGE_NUMBER_WIDTH, RENDER_DPI
from pdfebook.services.conversion_config import ResolvedConfig
from pdfebook.services.source_document import PDF_READ_ERRORS, open_pdf, render_page
from pdfebook.utils.exceptions import ConversionCancelled, ConversionIOError, RenderError
from pdfebook.utils.logger import logger

# (pages_done, total_pages)
PageCallback = Callable[[int, int], None]

IMAGES_SUBDIR = "images"


@dataclass
class PageArtifact:
    """One rendered page of the e-book.

    Attributes:
        page_number: 1-based source page number
        image_path: JPEG written for the page
        file_name: Image file name inside the images directory
        width: Image width in pixels
        height: Image height in pixels
        text: Page text (extracted or recognized), possibly empty
        confidence: OCR confidence 0-100, 0 when not recognized
        is_placeholder: True when rendering failed and a blank image stands in
    """

    page_number: int
    image_path: Path
    file_name: str
    width: int
    height: int
    text: str = ""
    confidence: float = 0.0
    is_placeholder: bool = False

    @property
    def href(self) -> str:
        """Image location relative to the package content directory."""
        return f"{IMAGES_SUBDIR}/{self.file_name}"


def page_number_width(total_pages: int) -> int:
    """Digits used for zero-padded page numbers."""
    return max(MIN_PAGE_NUMBER_WIDTH, len(str(max(total_pages, 1))))


def page_file_stem(page_number: int, total_pages: int) -> str:
    return f"page_{page_number:0{page_number_width(total_pages)}d}"


def optimize_image(image: Image.Image, max_width: int, grayscale: bool) -> Image.Image:
    """Apply grayscale and downscale to *max_width* keeping the aspect ratio.

    Images narrower than *max_width* are never upscaled.
    """
    if grayscale:
        image = image.convert("L")
    elif image.mode != "RGB":
        image = image.convert("RGB")

    if image.width > max_width:
        ratio = max_width / image.width
        new_size = (max_width, max(1, round(image.height * ratio)))
        image = image.resize(new_size, Image.Resampling.LANCZOS)

    return image


def save_jpeg(image: Image.Image, path: Path, quality: int) -> None:
    """Encode *image* as a progressive, optimized JPEG."""
    image.save(path, "JPEG", quality=quality, optimize=True, progressive=True)


# ----------------------------------------------------------------------
# Worker process side
# ----------------------------------------------------------------------

# Source document held open by this worker process
_worker_doc: "fitz.Document | None" = None
_worker_doc_path: str | None = None


def worker_init() -> None:
    """Initializer for ProcessPoolExecutor worker processes.

    Called once per worker process at startup. Performs:
    - Ignore SIGINT so only the main process handles Ctrl+C
    - Set low CPU priority (nice 19) to avoid impacting the desktop
    - Quiet image library logging in workers
    """
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    try:
        os.nice(19)
    except OSError:
        pass  # nice() may fail in some containerised environments

    logging.getLogger("PIL").setLevel(logging.WARNING)


def _worker_document(pdf_path: str) -> "fitz.Document":
    global _worker_doc, _worker_doc_path
    if _worker_doc is None or _worker_doc_path != pdf_path:
        close_worker_document()
        _worker_doc = open_pdf(pdf_path)
        _worker_doc_path = pdf_path
    return _worker_doc


def close_worker_document() -> None:
    """Close the document opened by render_page_job in this process."""
    global _worker_doc, _worker_doc_path
    if _worker_doc is not None:
        _worker_doc.close()
    _worker_doc = None
    _worker_doc_path = None


def render_page_job(args: dict[str, Any]) -> dict[str, Any]:
    """Worker function rendering one page to a JPEG.

    Must be at module level for pickling with ProcessPoolExecutor.

    Args:
        args: Dictionary with pdf_path, index, dest, dpi, max_width,
            grayscale and quality

    Returns:
        Dictionary with page_num, success, width and height, or error
    """
    page_num = args["index"] + 1
    try:
        doc = _worker_document(args["pdf_path"])
        image = render_page(doc[args["index"]], args["dpi"])
        image = optimize_image(image, args["max_width"], args["grayscale"])
        save_jpeg(image, Path(args["dest"]), args["quality"])
    except (*PDF_READ_ERRORS, ConversionIOError) as e:
        return {
            "page_num": page_num,
            "success": False,
            "error": str(RenderError(page_num, str(e))),
        }

    return {
        "page_num": page_num,
        "success": True,
        "width": image.width,
        "height": image.height,
    }


# ----------------------------------------------------------------------
# Main process side
# ----------------------------------------------------------------------


class PageRasterizer:
    """Renders the pages of one PDF into e-book images."""

    def __init__(
        self,
        resolved: ResolvedConfig,
        cancel_event: threading.Event | None = None,
        dpi: int = RENDER_DPI,
    ) -> None:
        self.resolved = resolved
        self.cancel_event = cancel_event or threading.Event()
        self.dpi = dpi

    def _job(self, source_path: Path, index: int, dest: Path) -> dict[str, Any]:
        config = self.resolved.config
        return {
            "pdf_path": str(source_path),
            "index": index,
            "dest": str(dest),
            "dpi": self.dpi,
            "max_width": config.image_max_width,
            "grayscale": config.grayscale,
            "quality": self.resolved.effective_quality,
        }

    def _write_placeholder(self, dest: Path) -> tuple[int, int]:
        try:
            save_jpeg(Image.new("RGB", (1, 1), "white"), dest, self.resolved.effective_quality)
        except OSError as e:
            raise ConversionIOError(str(dest), "write", str(e)) from e
        return 1, 1

    def _artifact(self, result: dict[str, Any], dest: Path) -> PageArtifact:
        """Turn a worker result into an artifact, writing a placeholder on failure."""
        if result["success"]:
            width, height = result["width"], result["height"]
        else:
            logger.warning(f"{result['error']}; using placeholder image")
            width, height = self._write_placeholder(dest)

        return PageArtifact(
            page_number=result["page_num"],
            image_path=dest,
            file_name=dest.name,
            width=width,
            height=height,
            is_placeholder=not result["success"],
        )

    def _abort_chunk(self, futures: list[Future]) -> None:
        for future in futures:
            future.cancel()
        raise ConversionCancelled(stage="rasterization")

    def rasterize(
        self,
        source_path: str | Path,
        page_count: int,
        images_dir: str | Path,
        on_page: PageCallback | None = None,
    ) -> list[PageArtifact]:
        """Render all pages into *images_dir*.

        Args:
            source_path: PDF to render.
            page_count: Number of pages in the PDF.
            images_dir: Destination directory for the JPEG files.
            on_page: Optional callback invoked with (pages_done, total).

        Returns:
            One artifact per page, in page order.

        Raises:
            ConversionCancelled: If the cancel event was set.
            ConversionIOError: If a placeholder image cannot be written.
        """
        source_path = Path(source_path)
        images_dir = Path(images_dir)
        images_dir.mkdir(parents=True, exist_ok=True)

        chunk_size = max(1, self.resolved.chunk_size)
        workers = max(1, self.resolved.concurrency)
        num_chunks = (page_count + chunk_size - 1) // chunk_size
        artifacts: list[PageArtifact] = []

        logger.info(
            f"Rasterizing {page_count} pages at {self.dpi} DPI in chunks of "
            f"{chunk_size} ({workers} worker processes)"
        )

        with ProcessPoolExecutor(max_workers=workers, initializer=worker_init) as executor:
            for chunk_idx in range(num_chunks):
                if self.cancel_event.is_set():
                    raise ConversionCancelled(stage="rasterization")

                start = chunk_idx * chunk_size
                end = min(start + chunk_size, page_count)
                dests = [
                    images_dir / f"{page_file_stem(i + 1, page_count)}.jpg"
                    for i in range(start, end)
                ]
                futures = [
                    executor.submit(render_page_job, self._job(source_path, i, dest))
                    for i, dest in zip(range(start, end), dests)
                ]

                # Consume in submission order so artifacts stay in page order
                for future, dest in zip(futures, dests):
                    if self.cancel_event.is_set():
                        self._abort_chunk(futures)
                    artifacts.append(self._artifact(future.result(), dest))
                    if on_page:
                        on_page(len(artifacts), page_count)

                if self.cancel_event.is_set():
                    raise ConversionCancelled(stage="rasterization")

                logger.debug(f"Chunk {chunk_idx + 1}/{num_chunks} done (pages {start + 1}-{end})")
                gc.collect()

        placeholders = sum(1 for a in artifacts if a.is_placeholder)
        if placeholders:
            logger.warning(f"{placeholders} of {page_count} pages replaced by placeholders")

        return artifacts
