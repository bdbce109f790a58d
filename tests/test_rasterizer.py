"""Tests for the page rasterizer."""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from PIL import Image

from conftest import make_text_pdf
from pdfebook.services import rasterizer
from pdfebook.services.conversion_config import ConversionConfig, ResolvedConfig
from pdfebook.services.rasterizer import (
    PageRasterizer,
    close_worker_document,
    optimize_image,
    page_file_stem,
    page_number_width,
    render_page_job,
)
from pdfebook.utils.exceptions import ConversionCancelled


def _resolved(chunk_size=2, concurrency=3, **options) -> ResolvedConfig:
    config = ConversionConfig(**options)
    return ResolvedConfig(
        config=config,
        chunk_size=chunk_size,
        concurrency=concurrency,
        effective_quality=config.image_quality,
    )


@pytest.fixture
def in_process_pool(monkeypatch):
    """Run render jobs on a thread of this process so patches apply to them."""

    def executor(max_workers, initializer=None):
        return ThreadPoolExecutor(max_workers=1)

    monkeypatch.setattr(rasterizer, "ProcessPoolExecutor", executor)
    yield
    close_worker_document()


class TestPageNaming:
    def test_minimum_width(self):
        assert page_number_width(7) == 3
        assert page_file_stem(7, 7) == "page_007"

    def test_wide_documents(self):
        assert page_number_width(1200) == 4
        assert page_file_stem(42, 1200) == "page_0042"


class TestOptimizeImage:
    def test_downscale_keeps_aspect(self):
        image = optimize_image(Image.new("RGB", (2400, 1200)), 1200, grayscale=False)
        assert image.size == (1200, 600)

    def test_never_upscales(self):
        image = optimize_image(Image.new("RGB", (800, 1000)), 1200, grayscale=False)
        assert image.size == (800, 1000)

    def test_grayscale(self):
        image = optimize_image(Image.new("RGB", (100, 100), "red"), 1200, grayscale=True)
        assert image.mode == "L"


class TestRasterize:
    def test_one_artifact_per_page_in_order(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=5)
        rasterizer = PageRasterizer(_resolved(image_max_width=400))
        artifacts = rasterizer.rasterize(pdf, 5, tmp_path / "images")

        assert [a.page_number for a in artifacts] == [1, 2, 3, 4, 5]
        assert [a.file_name for a in artifacts] == [f"page_00{i}.jpg" for i in range(1, 6)]
        for artifact in artifacts:
            assert artifact.image_path.exists()
            assert not artifact.is_placeholder
            assert artifact.width == 400
            with Image.open(artifact.image_path) as img:
                assert img.format == "JPEG"
                assert img.size == (artifact.width, artifact.height)

    def test_progress_callback(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=3)
        calls = []
        PageRasterizer(_resolved(image_max_width=200)).rasterize(
            pdf, 3, tmp_path / "images", on_page=lambda done, total: calls.append((done, total))
        )
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_failed_page_becomes_placeholder(self, tmp_path, in_process_pool):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=4)

        def flaky_render(page, dpi):
            if page.number == 1:
                raise RuntimeError("corrupt content stream")
            return Image.new("RGB", (300, 400), "white")

        with patch("pdfebook.services.rasterizer.render_page", side_effect=flaky_render):
            artifacts = PageRasterizer(_resolved()).rasterize(pdf, 4, tmp_path / "images")

        assert len(artifacts) == 4
        assert [a.is_placeholder for a in artifacts] == [False, True, False, False]
        placeholder = artifacts[1]
        assert (placeholder.width, placeholder.height) == (1, 1)
        assert placeholder.image_path.exists()

    def test_cancelled_before_start(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=2)
        event = threading.Event()
        event.set()
        with pytest.raises(ConversionCancelled):
            PageRasterizer(_resolved(), event).rasterize(pdf, 2, tmp_path / "images")
        assert list((tmp_path / "images").iterdir()) == []

    def test_cancel_stops_at_chunk_boundary(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=6)
        event = threading.Event()

        def on_page(done, total):
            if done == 1:
                event.set()

        resolved = _resolved(chunk_size=2, concurrency=1, image_max_width=200)
        rasterizer = PageRasterizer(resolved, event)
        with pytest.raises(ConversionCancelled):
            rasterizer.rasterize(pdf, 6, tmp_path / "images", on_page=on_page)

        written = sorted(p.name for p in (tmp_path / "images").iterdir())
        assert len(written) <= 2
        assert "page_003.jpg" not in written


class TestRenderPageJob:
    def _args(self, pdf, tmp_path, index=0):
        return {
            "pdf_path": str(pdf),
            "index": index,
            "dest": str(tmp_path / f"page_{index + 1}.jpg"),
            "dpi": 72,
            "max_width": 300,
            "grayscale": True,
            "quality": 70,
        }

    def test_renders_page(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=2)
        try:
            result = render_page_job(self._args(pdf, tmp_path, index=1))
        finally:
            close_worker_document()

        assert result == {"page_num": 2, "success": True, "width": 300, "height": 388}
        with Image.open(tmp_path / "page_2.jpg") as img:
            assert img.mode == "L"

    def test_render_failure_is_reported(self, tmp_path):
        pdf = make_text_pdf(tmp_path / "doc.pdf", num_pages=1)
        try:
            with patch(
                "pdfebook.services.rasterizer.render_page",
                side_effect=RuntimeError("corrupt content stream"),
            ):
                result = render_page_job(self._args(pdf, tmp_path))
        finally:
            close_worker_document()

        assert result["success"] is False
        assert result["page_num"] == 1
        assert "corrupt content stream" in result["error"]
        assert not (tmp_path / "page_1.jpg").exists()

    def test_unreadable_source_is_reported(self, tmp_path):
        bogus = tmp_path / "bogus.pdf"
        bogus.write_bytes(b"not a pdf")
        result = render_page_job(self._args(bogus, tmp_path))
        assert result["success"] is False
        assert "Failed to render page 1" in result["error"]
