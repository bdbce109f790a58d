"""End-to-end tests for EbookConverter."""

import zipfile
from unittest.mock import MagicMock

import pytest

from conftest import FakeFormatConverter, make_scanned_pdf, make_text_pdf
from pdfebook.services import converter as converter_module
from pdfebook.services.conversion_config import ConversionConfig, OutputFormat
from pdfebook.services.converter import (
    ConversionStage,
    ConversionState,
    EbookConverter,
    ProgressReporter,
    compression_ratio,
    default_output_path,
)
from pdfebook.services.epub.content import ContentGenerator
from pdfebook.services.ocr.engine import OCREngine
from pdfebook.services.source_document import SourceDocument
from pdfebook.utils.exceptions import (
    ConfigError,
    ConversionCancelled,
    ConversionIOError,
    OCRError,
    PackagingError,
)


class TestHelpers:
    def test_compression_ratio(self):
        assert compression_ratio(1000, 250) == 75.0
        assert compression_ratio(1000, 1500) == -50.0
        assert compression_ratio(0, 10) == 0.0

    def test_default_output_path(self, tmp_path):
        source = tmp_path / "book.pdf"
        assert default_output_path(source, OutputFormat.EPUB) == tmp_path / "book.epub"
        assert default_output_path(source, OutputFormat.AZW3) == tmp_path / "book.azw3"

    def test_default_output_never_overwrites_input(self, tmp_path):
        source = tmp_path / "book.pdf"
        source.write_bytes(b"%PDF")
        assert default_output_path(source, OutputFormat.PDF) == tmp_path / "book_ebook.pdf"


class TestProgressReporter:
    def test_monotonic_and_capped(self):
        events = []
        reporter = ProgressReporter(events.append)
        reporter.emit(ConversionStage.CONTENT)
        reporter.emit(ConversionStage.PAGES, 40)
        reporter.emit(ConversionStage.COMPLETE, 120)
        assert [e.percent for e in events] == [75.0, 75.0, 100.0]
        assert events[0].stage == "Generating content..."

    def test_span(self):
        reporter = ProgressReporter()
        on_page = reporter.span(ConversionStage.PAGES, (30.0, 70.0))
        on_page(1, 4)
        on_page(4, 4)
        assert [e.percent for e in reporter.history] == [40.0, 70.0]


class TestConvertTextDocument:
    def test_ten_page_text_pdf(self, tmp_path, isolated_tempdir):
        pdf = make_text_pdf(tmp_path / "ten.pdf", num_pages=10, noise_images=True)
        events = []
        converter = EbookConverter()
        result = converter.convert(pdf, config={"image_max_width": 600}, on_progress=events.append)

        assert result.output_path == tmp_path / "ten.epub"
        assert result.page_count == 10
        assert result.placeholder_pages == 0
        assert result.compression_ratio > 0
        assert result.ocr_performed is False
        assert result.format_name == "EPUB"
        assert result.output_size == result.output_path.stat().st_size
        assert converter.state == ConversionState.COMPLETE

        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100.0
        assert events[-1].stage == "Complete!"

        with zipfile.ZipFile(result.output_path) as zf:
            assert zf.namelist()[0] == "mimetype"
            pages = [n for n in zf.namelist() if n.startswith("OEBPS/text/")]
            assert len(pages) == 10
            first_page = zf.read("OEBPS/text/page_001.xhtml").decode()
            assert "quick brown fox" in first_page
            opf = zf.read("OEBPS/content.opf").decode()
            assert "<dc:title>Sample Book</dc:title>" in opf
            assert "<dc:creator>Jane Writer</dc:creator>" in opf

        assert list(isolated_tempdir.iterdir()) == []

    def test_lower_quality_never_larger(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=2)
        high = EbookConverter().convert(
            pdf, tmp_path / "high.epub", {"image_quality": 95, "image_max_width": 800}
        )
        low = EbookConverter().convert(
            pdf, tmp_path / "low.epub", {"image_quality": 20, "image_max_width": 800}
        )
        assert low.output_size <= high.output_size

    def test_pdf_output(self, text_pdf, tmp_path):
        result = EbookConverter().convert(
            text_pdf, tmp_path / "out.pdf", {"output_format": "pdf", "image_max_width": 300}
        )
        assert result.format_name == "PDF"
        assert result.output_path.read_bytes().startswith(b"%PDF")

    def test_mobi_without_tool_falls_back(self, text_pdf, tmp_path):
        converter = EbookConverter(format_converter=FakeFormatConverter(available=False))
        result = converter.convert(
            text_pdf, tmp_path / "book.mobi", {"output_format": "mobi", "image_max_width": 300}
        )

        assert result.output_path.suffix == ".mobi"
        assert result.format_name == "EPUB"
        assert any("MOBI" in w for w in result.warnings)
        with zipfile.ZipFile(result.output_path) as zf:
            assert zf.infolist()[0].filename == "mimetype"
            assert zf.infolist()[0].compress_type == zipfile.ZIP_STORED

    def test_size_warning(self, text_pdf, tmp_path):
        result = EbookConverter().convert(
            text_pdf,
            tmp_path / "book.epub",
            {"max_file_size_mb": 1, "image_max_width": 300},
        )
        assert result.warnings == []

        warnings = EbookConverter._device_warnings(
            5 * 1024 * 1024, ConversionConfig(max_file_size_mb=1)
        )
        assert len(warnings) == 1
        assert warnings[0].startswith("File size (5.00 MB)")


class TestConvertScannedDocument:
    def test_auto_ocr(self, tmp_path, fake_ocr_factory):
        pdf = make_scanned_pdf(tmp_path / "scan.pdf", num_pages=2)
        engine = OCREngine(backend_factory=fake_ocr_factory)
        converter = EbookConverter(ocr_engine=engine)
        result = converter.convert(pdf, config={"image_max_width": 300})

        assert result.ocr_performed is True
        assert 0 <= result.average_confidence <= 100
        assert result.average_confidence == pytest.approx(85.0)
        with zipfile.ZipFile(result.output_path) as zf:
            page = zf.read("OEBPS/text/page_001.xhtml").decode()
        assert "Recognized heading" in page
        assert "recognized body &amp; text" in page

    def test_auto_detect_disabled(self, tmp_path, fake_ocr_factory):
        pdf = make_scanned_pdf(tmp_path / "scan.pdf", num_pages=1)
        converter = EbookConverter(ocr_engine=OCREngine(backend_factory=fake_ocr_factory))
        result = converter.convert(pdf, config={"auto_detect_scanned": False})
        assert result.ocr_performed is False
        assert fake_ocr_factory.created == []

    def test_ocr_init_failure_is_fatal(self, tmp_path, isolated_tempdir):
        pdf = make_scanned_pdf(tmp_path / "scan.pdf", num_pages=1)
        engine = OCREngine(backend_factory=MagicMock(side_effect=RuntimeError("no models")))
        converter = EbookConverter(ocr_engine=engine)
        with pytest.raises(OCRError):
            converter.convert(pdf)
        assert converter.state == ConversionState.FAILED
        assert list(isolated_tempdir.iterdir()) == []


class TestCancellation:
    def test_cancel_during_rasterization(self, tmp_path, isolated_tempdir):
        pdf = make_text_pdf(tmp_path / "ten.pdf", num_pages=10)
        converter = EbookConverter()
        events = []

        def on_progress(event):
            events.append(event)
            # 2 of 10 pages rendered
            if event.stage == "Converting pages..." and event.percent >= 38:
                converter.cancel()

        with pytest.raises(ConversionCancelled):
            converter.convert(
                pdf, config={"memory_profile": "low-memory"}, on_progress=on_progress
            )

        assert converter.state == ConversionState.FAILED
        assert not (tmp_path / "ten.epub").exists()
        assert list(isolated_tempdir.iterdir()) == []
        # Pages stop at the end of the first chunk of 5
        assert max(e.percent for e in events) <= 50.0

    def test_new_run_after_cancel(self, text_pdf, tmp_path):
        converter = EbookConverter()
        converter.cancel()
        result = converter.convert(text_pdf, tmp_path / "again.epub", {"image_max_width": 300})
        assert converter.state == ConversionState.COMPLETE
        assert result.page_count == 3


class TestErrors:
    def test_missing_input(self, tmp_path):
        with pytest.raises(ConversionIOError, match="file not found"):
            EbookConverter().convert(tmp_path / "missing.pdf")

    def test_invalid_options(self, text_pdf):
        with pytest.raises(ConfigError):
            EbookConverter().convert(text_pdf, config={"image_quality": 300})

    def test_not_a_pdf(self, tmp_path, isolated_tempdir):
        bogus = tmp_path / "bogus.pdf"
        bogus.write_bytes(b"this is not a pdf")
        converter = EbookConverter()
        with pytest.raises(ConversionIOError):
            converter.convert(bogus)
        assert converter.state == ConversionState.FAILED
        assert list(isolated_tempdir.iterdir()) == []

    def test_invalid_state_transition(self):
        converter = EbookConverter()
        converter._advance(ConversionState.PACKAGING)
        with pytest.raises(RuntimeError):
            converter._advance(ConversionState.LOADING)

    def test_unexpected_read_error_is_wrapped(self, text_pdf, monkeypatch, isolated_tempdir):
        def broken_text(self, index):
            raise RuntimeError("bad text layer")

        monkeypatch.setattr(SourceDocument, "page_text", broken_text)
        converter = EbookConverter()
        with pytest.raises(ConversionIOError, match="bad text layer") as exc_info:
            converter.convert(text_pdf, config={"image_max_width": 200})

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.path == str(text_pdf)
        assert converter.state == ConversionState.FAILED
        assert list(isolated_tempdir.iterdir()) == []

    def test_unexpected_write_error_is_wrapped(self, text_pdf, tmp_path, monkeypatch):
        def broken_build(self, *args, **kwargs):
            raise UnicodeEncodeError("utf-8", "\udcff", 0, 1, "surrogates not allowed")

        monkeypatch.setattr(ContentGenerator, "build", broken_build)
        converter = EbookConverter()
        with pytest.raises(PackagingError):
            converter.convert(text_pdf, tmp_path / "out.epub", {"image_max_width": 200})
        assert converter.state == ConversionState.FAILED
        assert not (tmp_path / "out.epub").exists()

    def test_unwritable_output_directory(self, text_pdf, tmp_path, monkeypatch):
        monkeypatch.setattr(
            converter_module, "check_writable", lambda path: (False, "folder not writable")
        )
        converter = EbookConverter()
        with pytest.raises(ConversionIOError, match="not writable"):
            converter.convert(text_pdf, tmp_path / "out.epub")
        assert converter.state == ConversionState.FAILED
