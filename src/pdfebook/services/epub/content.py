"""
PdfEbook - EPUB Content Generator

Writes the package tree of an image-based EPUB 3 book: the container
descriptor, the OPF package document, NCX and nav tables of contents, the
stylesheet, and one XHTML file per page. Output is deterministic for the
same inputs, so repeated runs produce identical trees.
"""

import hashlib
import logging
import re
import shutil
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from pathlib import Path

from pdfebook.config import APP_PUBLISHER
from pdfebook.services.conversion_config import ConversionConfig
from pdfebook.services.rasterizer import IMAGES_SUBDIR, PageArtifact, page_file_stem
from pdfebook.services.source_document import DocumentMetadata

logger = logging.getLogger(__name__)

MIMETYPE = "application/epub+zip"
CONTENT_DIR = "OEBPS"
OPF_PATH = f"{CONTENT_DIR}/content.opf"
CONTAINER_PATH = "META-INF/container.xml"

# OCR language codes → BCP 47 tags for dc:language
_DC_LANGUAGES: dict[str, str] = {
    "eng": "en",
    "por": "pt",
    "spa": "es",
    "fra": "fr",
    "deu": "de",
    "ita": "it",
    "nld": "nl",
    "chi_sim": "zh-CN",
    "chi_tra": "zh-TW",
    "jpn": "ja",
    "kor": "ko",
    "ara": "ar",
}

_CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

_BASE_CSS = """body, html { margin: 0; padding: 0; }
.page-container { width: 100vw; height: 100vh; display: flex; align-items: center; justify-content: center; position: relative; }
.page-image { max-width: 100%; max-height: 100%; object-fit: contain; }
.page-text { position: absolute; top: 0; left: 0; width: 100%; height: 100%; color: transparent; z-index: -1; overflow: hidden; font-size: 1px; }
"""

_ANNOTATION_CSS = (
    ".annotation-layer { position: absolute; top: 0; left: 0; width: 100%; height: 100%; }\n"
)

# Characters outside the XML 1.0 Char production
_XML_INVALID_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


@dataclass(frozen=True)
class ManifestEntry:
    """One resource listed in the OPF manifest; href is relative to OEBPS."""

    id: str
    href: str
    media_type: str
    properties: str | None = None


@dataclass(frozen=True)
class NavPoint:
    id: str
    play_order: int
    label: str
    src: str


@dataclass
class PackageTree:
    """An EPUB package laid out on disk, ready to be archived."""

    root: Path
    metadata: DocumentMetadata
    identifier: str
    manifest: list[ManifestEntry] = field(default_factory=list)
    spine: list[str] = field(default_factory=list)
    nav_points: list[NavPoint] = field(default_factory=list)

    def archive_entries(self) -> Iterator[str]:
        """Archive member names in packaging order, mimetype first."""
        yield "mimetype"
        yield CONTAINER_PATH
        yield OPF_PATH
        for entry in self.manifest:
            yield f"{CONTENT_DIR}/{entry.href}"


def xml_text(value: str) -> str:
    """Escape text for XML element content and attribute values.

    Control characters XML does not allow are dropped.
    """
    return escape(_XML_INVALID_CHARS.sub("", value), quote=True)


def dc_language(ocr_languages: Sequence[str]) -> str:
    """Map the first OCR language code onto a dc:language tag."""
    if not ocr_languages:
        return "en"
    return _DC_LANGUAGES.get(ocr_languages[0], "en")


def book_identifier(source_path: str | Path) -> str:
    """Stable UUID for a source file, derived from its SHA-1 digest."""
    digest = hashlib.sha1()
    with open(source_path, "rb") as f:
        for block in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(block)
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"sha1:{digest.hexdigest()}"))


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ContentGenerator:
    """Builds the package tree for a list of rendered pages."""

    def build(
        self,
        root: str | Path,
        metadata: DocumentMetadata,
        artifacts: Sequence[PageArtifact],
        config: ConversionConfig,
        identifier: str,
        language: str = "en",
        modified: str | None = None,
    ) -> PackageTree:
        """Write the package files under *root*.

        Args:
            root: Package root; page images are expected (or copied) under
                OEBPS/images.
            metadata: Bibliographic record for the OPF metadata block.
            artifacts: Rendered pages in page order.
            config: Conversion options (device, text layer, annotations).
            identifier: Book UUID without the ``urn:uuid:`` prefix.
            language: dc:language tag.
            modified: dcterms:modified timestamp; current UTC time if omitted.

        Returns:
            The PackageTree describing what was written.
        """
        root = Path(root)
        content_dir = root / CONTENT_DIR
        (root / "META-INF").mkdir(parents=True, exist_ok=True)
        for sub in (IMAGES_SUBDIR, "css", "text"):
            (content_dir / sub).mkdir(parents=True, exist_ok=True)

        tree = PackageTree(root=root, metadata=metadata, identifier=identifier)
        tree.manifest.extend(
            [
                ManifestEntry("ncx", "toc.ncx", "application/x-dtbncx+xml"),
                ManifestEntry("nav", "nav.xhtml", "application/xhtml+xml", "nav"),
                ManifestEntry("css", "css/style.css", "text/css"),
            ]
        )

        total = len(artifacts)
        for artifact in artifacts:
            self._place_image(artifact, content_dir)
            stem = page_file_stem(artifact.page_number, total)
            number = stem.split("_", 1)[1]
            page_href = f"text/{stem}.xhtml"
            tree.manifest.append(ManifestEntry(f"img_{number}", artifact.href, "image/jpeg"))
            tree.manifest.append(ManifestEntry(stem, page_href, "application/xhtml+xml"))
            tree.spine.append(stem)
            tree.nav_points.append(
                NavPoint(
                    id=f"navPoint-{artifact.page_number}",
                    play_order=artifact.page_number,
                    label=f"Page {artifact.page_number}",
                    src=page_href,
                )
            )
            (content_dir / page_href).write_text(
                self._page_xhtml(artifact, metadata, config), encoding="utf-8"
            )

        (root / "mimetype").write_text(MIMETYPE, encoding="ascii")
        (root / CONTAINER_PATH).write_text(_CONTAINER_XML, encoding="utf-8")
        (root / OPF_PATH).write_text(
            self._content_opf(tree, config, language, modified or _utc_timestamp()),
            encoding="utf-8",
        )
        (content_dir / "toc.ncx").write_text(self._toc_ncx(tree), encoding="utf-8")
        (content_dir / "nav.xhtml").write_text(self._nav_xhtml(tree), encoding="utf-8")
        (content_dir / "css" / "style.css").write_text(self._stylesheet(config), encoding="utf-8")

        logger.info(f"Generated EPUB structure: {total} pages, {len(tree.manifest)} manifest items")
        return tree

    @staticmethod
    def _place_image(artifact: PageArtifact, content_dir: Path) -> None:
        target = content_dir / artifact.href
        if Path(artifact.image_path).resolve() != target.resolve():
            shutil.copy2(artifact.image_path, target)

    @staticmethod
    def _content_opf(
        tree: PackageTree, config: ConversionConfig, language: str, modified: str
    ) -> str:
        meta = tree.metadata
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="BookId">',
            '  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">',
            f'    <dc:identifier id="BookId">urn:uuid:{tree.identifier}</dc:identifier>',
            f"    <dc:title>{xml_text(meta.title)}</dc:title>",
            f"    <dc:creator>{xml_text(meta.author)}</dc:creator>",
            f"    <dc:language>{xml_text(language)}</dc:language>",
            f"    <dc:date>{xml_text(meta.creation_date)}</dc:date>",
            f"    <dc:publisher>{xml_text(APP_PUBLISHER)}</dc:publisher>",
        ]
        if meta.subject:
            lines.append(f"    <dc:description>{xml_text(meta.subject)}</dc:description>")
        if meta.keywords:
            lines.append(f"    <dc:subject>{xml_text(meta.keywords)}</dc:subject>")
        lines.append(f'    <meta property="dcterms:modified">{modified}</meta>')
        if config.optimize_for_device:
            lines.append('    <meta name="fixed-layout" content="true"/>')
            lines.append('    <meta property="rendition:layout">pre-paginated</meta>')
        if config.preserve_annotations:
            lines.append('    <meta name="RegionMagnification" content="true"/>')
        lines.append("  </metadata>")

        lines.append("  <manifest>")
        for entry in tree.manifest:
            props = f' properties="{entry.properties}"' if entry.properties else ""
            lines.append(
                f'    <item id="{entry.id}" href="{xml_text(entry.href)}" '
                f'media-type="{entry.media_type}"{props}/>'
            )
        lines.append("  </manifest>")

        lines.append('  <spine toc="ncx">')
        lines.extend(f'    <itemref idref="{idref}"/>' for idref in tree.spine)
        lines.append("  </spine>")
        lines.append("</package>")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _toc_ncx(tree: PackageTree) -> str:
        count = len(tree.nav_points)
        nav = "".join(
            f'\n    <navPoint id="{p.id}" playOrder="{p.play_order}">'
            f"\n      <navLabel><text>{p.label}</text></navLabel>"
            f'\n      <content src="{p.src}"/>'
            f"\n    </navPoint>"
            for p in tree.nav_points
        )
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE ncx PUBLIC "-//NISO//DTD ncx 2005-1//EN" "http://www.daisy.org/z3986/2005/ncx-2005-1.dtd">
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="urn:uuid:{tree.identifier}"/>
    <meta name="dtb:depth" content="1"/>
    <meta name="dtb:totalPageCount" content="{count}"/>
    <meta name="dtb:maxPageNumber" content="{count}"/>
  </head>
  <docTitle><text>{xml_text(tree.metadata.title)}</text></docTitle>
  <navMap>{nav}
  </navMap>
</ncx>
"""

    @staticmethod
    def _nav_xhtml(tree: PackageTree) -> str:
        items = "\n".join(
            f'      <li><a href="{p.src}">{p.label}</a></li>' for p in tree.nav_points
        )
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head>
  <title>{xml_text(tree.metadata.title)}</title>
  <meta charset="UTF-8"/>
</head>
<body>
  <nav epub:type="toc">
    <h1>Table of Contents</h1>
    <ol>
{items}
    </ol>
  </nav>
</body>
</html>
"""

    @staticmethod
    def _stylesheet(config: ConversionConfig) -> str:
        if config.preserve_annotations:
            return _BASE_CSS + _ANNOTATION_CSS
        return _BASE_CSS

    @staticmethod
    def _page_xhtml(
        artifact: PageArtifact, metadata: DocumentMetadata, config: ConversionConfig
    ) -> str:
        number = artifact.page_number
        layers = []
        if config.include_metadata:
            layers.append(
                f'    <div class="page-text" aria-hidden="true">{xml_text(artifact.text)}</div>'
            )
        if config.preserve_annotations:
            layers.append('    <div class="annotation-layer"></div>')
        layer_block = "\n".join(layers)
        if layer_block:
            layer_block += "\n"

        return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head>
  <title>{xml_text(metadata.title)} - Page {number}</title>
  <link rel="stylesheet" type="text/css" href="../css/style.css"/>
  <meta charset="UTF-8"/>
  <meta name="viewport" content="width={artifact.width}, height={artifact.height}"/>
</head>
<body>
  <div class="page-container">
    <img class="page-image" src="../{artifact.href}" alt="Page {number}"/>
{layer_block}  </div>
</body>
</html>
"""
