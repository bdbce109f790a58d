"""
PdfEbook - Packaging and Format Adaptation

EpubPackager writes a PackageTree into an EPUB archive (``mimetype`` first
and stored, everything else deflated). FormatAdapter turns the package into
the requested output: the EPUB itself, MOBI/AZW3 through an external
converter with an EPUB fallback, or an image-only PDF built with ReportLab.
"""

import logging
import shutil
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from reportlab.pdfgen import canvas

from pdfebook.constants import FORMAT_CONVERSION_TIMEOUT
from pdfebook.services.conversion_config import OutputFormat
from pdfebook.services.epub.content import PackageTree
from pdfebook.services.format_converter import CalibreFormatConverter, FormatConverter
from pdfebook.services.rasterizer import PageArtifact
from pdfebook.utils.exceptions import ExternalToolError, PackagingError

logger = logging.getLogger(__name__)


class EpubPackager:
    """Writes EPUB archives."""

    def package(self, tree: PackageTree, output_path: str | Path) -> Path:
        """Archive *tree* into *output_path*.

        Raises:
            PackagingError: If the archive cannot be written.
        """
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(output_path, "w") as zf:
                for name in tree.archive_entries():
                    source = tree.root / name
                    if name == "mimetype":
                        zf.write(source, name, compress_type=zipfile.ZIP_STORED)
                    else:
                        zf.write(source, name, compress_type=zipfile.ZIP_DEFLATED)
        except OSError as e:
            if output_path.is_file():
                output_path.unlink()
            raise PackagingError(str(output_path), str(e)) from e

        logger.info(f"EPUB written: {output_path}")
        return output_path


@dataclass
class AdaptResult:
    """Final output of the format adaptation stage."""

    output_path: Path
    format: OutputFormat
    warnings: list[str] = field(default_factory=list)


class FormatAdapter:
    """Produces the requested output format from a package tree."""

    def __init__(
        self,
        packager: EpubPackager | None = None,
        converter: FormatConverter | None = None,
        timeout: float = FORMAT_CONVERSION_TIMEOUT,
    ) -> None:
        self.packager = packager or EpubPackager()
        self.converter = converter or CalibreFormatConverter()
        self.timeout = timeout

    def adapt(
        self,
        tree: PackageTree,
        artifacts: Sequence[PageArtifact],
        output_path: str | Path,
        output_format: OutputFormat,
        work_dir: str | Path,
    ) -> AdaptResult:
        output_path = Path(output_path)

        if output_format == OutputFormat.EPUB:
            return AdaptResult(self.packager.package(tree, output_path), output_format)

        if output_format == OutputFormat.PDF:
            return AdaptResult(write_image_pdf(artifacts, output_path), output_format)

        return self._convert_external(tree, output_path, output_format, Path(work_dir))

    def _convert_external(
        self,
        tree: PackageTree,
        output_path: Path,
        output_format: OutputFormat,
        work_dir: Path,
    ) -> AdaptResult:
        intermediate = self.packager.package(tree, work_dir / f"{output_path.stem}.epub")

        try:
            if not self.converter.is_available():
                raise ExternalToolError(self.converter.name, "not available")
            output_path.parent.mkdir(parents=True, exist_ok=True)
            self.converter.convert(intermediate, output_path, self.timeout)
        except (ExternalToolError, OSError, RuntimeError) as e:
            warning = (
                f"{output_format.display_name} conversion failed ({e}); "
                f"{output_path.name} contains the EPUB book instead"
            )
            logger.warning(warning)
            # The EPUB is still readable on most devices under the requested name
            try:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(intermediate), str(output_path))
            except OSError as move_error:
                raise PackagingError(str(output_path), str(move_error)) from move_error
            return AdaptResult(output_path, OutputFormat.EPUB, [warning])

        intermediate.unlink(missing_ok=True)
        logger.info(f"{output_format.display_name} written: {output_path}")
        return AdaptResult(output_path, output_format)


def write_image_pdf(artifacts: Sequence[PageArtifact], output_path: str | Path) -> Path:
    """Write one PDF page per artifact, each sized to its image in pixels.

    Raises:
        PackagingError: If the PDF cannot be written.
    """
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        c = canvas.Canvas(str(output_path))
        for artifact in artifacts:
            width, height = float(artifact.width), float(artifact.height)
            c.setPageSize((width, height))
            c.drawImage(str(artifact.image_path), 0, 0, width=width, height=height)
            c.showPage()
        c.save()
    except OSError as e:
        if output_path.is_file():
            output_path.unlink()
        raise PackagingError(str(output_path), str(e)) from e

    logger.info(f"PDF written: {output_path} ({len(artifacts)} pages)")
    return output_path
