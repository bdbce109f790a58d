"""Tests for exceptions and temporary directory management."""

import os

import pytest

from pdfebook.utils import temp_manager
from pdfebook.utils.exceptions import (
    ConfigError,
    ConversionCancelled,
    ConversionIOError,
    ExternalToolError,
    ExternalToolTimeoutError,
    OCRError,
    PackagingError,
    PdfEbookError,
    RenderError,
)


class TestExceptions:
    def test_hierarchy(self):
        for exc in (
            ConfigError("image_quality", "bad"),
            ConversionIOError("/x.pdf", "read"),
            RenderError(3),
            OCRError("boom"),
            PackagingError("/out.epub"),
            ExternalToolError("ebook-convert"),
            ConversionCancelled(),
        ):
            assert isinstance(exc, PdfEbookError)
        assert issubclass(ExternalToolTimeoutError, ExternalToolError)

    def test_config_error_message(self):
        err = ConfigError("output_format", "unsupported value 'docx'")
        assert str(err) == "Configuration error for 'output_format': unsupported value 'docx'"

    def test_io_error_details(self):
        err = ConversionIOError("/tmp/book.pdf", "read", "file not found")
        assert err.message == "Cannot read '/tmp/book.pdf' - file not found"
        assert "operation=read" in str(err)

    def test_ocr_error_languages(self):
        err = OCRError("no models", languages=("eng", "por"))
        assert err.languages == ("eng", "por")
        assert str(err) == "OCR failed: no models (languages=eng+por)"

    def test_ocr_error_page(self):
        assert OCRError("empty", page_number=4).message == "OCR failed for page 4: empty"

    def test_tool_error_exit_code(self):
        err = ExternalToolError("ebook-convert", "crashed", exit_code=3)
        assert str(err) == "External tool 'ebook-convert' failed - crashed (exit_code=3)"

    def test_timeout(self):
        err = ExternalToolTimeoutError("ebook-convert", 300)
        assert err.timeout_seconds == 300
        assert "timed out after 300s" in str(err)

    def test_cancelled(self):
        err = ConversionCancelled(stage="ocr")
        assert err.stage == "ocr"
        assert str(err) == "Conversion cancelled by user (stage=ocr)"


class TestTempWorkspace:
    def test_created_and_removed(self, isolated_tempdir):
        with temp_manager.temp_workspace() as work:
            assert work.is_dir()
            assert work.parent == isolated_tempdir
            assert work.name.startswith("pdfebook_")
            assert temp_manager.is_tracked(work)
            (work / "file.txt").write_text("data")
        assert not work.exists()
        assert not temp_manager.is_tracked(work)

    def test_removed_on_error(self, isolated_tempdir):
        with pytest.raises(ValueError):
            with temp_manager.temp_workspace() as work:
                raise ValueError("stage failed")
        assert not work.exists()
        assert list(isolated_tempdir.iterdir()) == []

    def test_mkdtemp_failure(self, tmp_path):
        with pytest.raises(ConversionIOError):
            temp_manager.mkdtemp(base_dir=tmp_path / "does" / "not" / "exist")

    def test_cleanup_all(self, isolated_tempdir):
        paths = [temp_manager.mkdtemp() for _ in range(2)]
        temp_manager.cleanup_all()
        assert not any(os.path.exists(p) for p in paths)
        assert not any(temp_manager.is_tracked(p) for p in paths)

    def test_check_writable(self, tmp_path):
        ok, message = temp_manager.check_writable(tmp_path / "new" / "book.epub")
        assert ok
        assert message == ""
