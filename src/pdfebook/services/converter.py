"""
PdfEbook - Conversion Orchestrator

EbookConverter runs one PDF → e-book conversion as a linear sequence of
stages, reporting progress as (percent, label) events. It owns the
temporary working directory, the open source document and the OCR engine
for the duration of a run and releases all of them on every exit path.
"""

import threading
import time
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any

from pdfebook.constants import BYTES_PER_MB
from pdfebook.services.conversion_config import (
    ConversionConfig,
    OutputFormat,
    ResolvedConfig,
    resolve_config,
)
from pdfebook.services.epub.content import ContentGenerator, book_identifier, dc_language
from pdfebook.services.epub.packaging import EpubPackager, FormatAdapter
from pdfebook.services.format_converter import FormatConverter
from pdfebook.services.ocr.detection import is_scanned_document
from pdfebook.services.ocr.engine import OCREngine
from pdfebook.services.ocr.processor import OCRProcessor, OCRRun
from pdfebook.services.rasterizer import PageArtifact, PageRasterizer
from pdfebook.services.source_document import SourceDocument, extract_metadata
from pdfebook.utils.exceptions import (
    ConversionCancelled,
    ConversionIOError,
    OCRError,
    PackagingError,
    PdfEbookError,
)
from pdfebook.utils.i18n import N_, _
from pdfebook.utils.logger import logger
from pdfebook.utils.temp_manager import check_writable, temp_workspace


class ConversionState(Enum):
    """Run states, in the only order they may be entered (FAILED excepted)."""

    IDLE = auto()
    LOADING = auto()
    OCR_DETECTION = auto()
    METADATA_EXTRACTION = auto()
    RASTERIZATION = auto()
    CONTENT_GENERATION = auto()
    PACKAGING = auto()
    FORMAT_ADAPTATION = auto()
    DEVICE_OPTIMIZATION = auto()
    COMPLETE = auto()
    FAILED = auto()


_STATE_ORDER: list[ConversionState] = [s for s in ConversionState if s != ConversionState.FAILED]

# Stages whose unexpected failures are reported as input or output errors
_READ_STATES = frozenset(
    {
        ConversionState.LOADING,
        ConversionState.OCR_DETECTION,
        ConversionState.METADATA_EXTRACTION,
        ConversionState.RASTERIZATION,
    }
)
_WRITE_STATES = frozenset(
    {
        ConversionState.CONTENT_GENERATION,
        ConversionState.PACKAGING,
        ConversionState.FORMAT_ADAPTATION,
        ConversionState.DEVICE_OPTIMIZATION,
        ConversionState.COMPLETE,
    }
)


class ConversionStage(Enum):
    """Progress checkpoints: (label, percent at stage start)."""

    LOADING = (N_("Loading PDF..."), 5)
    ANALYZING = (N_("Analyzing document..."), 10)
    OCR = (N_("Performing OCR..."), 15)
    METADATA = (N_("Extracting metadata..."), 25)
    STRUCTURE = (N_("Preparing e-book structure..."), 30)
    PAGES = (N_("Converting pages..."), 30)
    CONTENT = (N_("Generating content..."), 75)
    PACKAGING = (N_("Creating output file..."), 80)
    FORMAT = (N_("Converting format..."), 82)
    DEVICE = (N_("Optimizing for device..."), 90)
    COMPLETE = (N_("Complete!"), 100)

    def __init__(self, label: str, percent: int) -> None:
        self.label = label
        self.percent = percent


# Ranges filled page by page
OCR_PROGRESS_SPAN = (15.0, 25.0)
PAGES_PROGRESS_SPAN = (30.0, 70.0)


@dataclass(frozen=True)
class ProgressEvent:
    percent: float
    stage: str


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Emits monotonically non-decreasing progress events."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self.callback = callback
        self.history: list[ProgressEvent] = []
        self._percent = 0.0

    @property
    def percent(self) -> float:
        return self._percent

    def emit(self, stage: ConversionStage, percent: float | None = None) -> ProgressEvent:
        value = float(stage.percent if percent is None else percent)
        self._percent = min(100.0, max(self._percent, value))
        event = ProgressEvent(round(self._percent, 2), _(stage.label))
        self.history.append(event)
        if self.callback:
            self.callback(event)
        return event

    def span(
        self, stage: ConversionStage, bounds: tuple[float, float]
    ) -> Callable[[int, int], None]:
        """Return a (done, total) page callback mapping onto *bounds*."""
        low, high = bounds

        def on_page(done: int, total: int) -> None:
            fraction = done / total if total else 1.0
            self.emit(stage, low + (high - low) * fraction)

        return on_page


@dataclass
class ConversionResult:
    """Outcome of a successful run."""

    output_path: Path
    output_size: int
    input_size: int
    compression_ratio: float
    elapsed_seconds: float
    page_count: int
    format_name: str
    warnings: list[str] = field(default_factory=list)
    ocr_performed: bool = False
    average_confidence: float = 0.0
    placeholder_pages: int = 0


def compression_ratio(input_size: int, output_size: int) -> float:
    """Size reduction in percent, 2 decimals; negative when the output grew."""
    if input_size <= 0:
        return 0.0
    return round((1 - output_size / input_size) * 100, 2)


def default_output_path(input_path: Path, output_format: OutputFormat) -> Path:
    """Input directory + input stem + format extension, never the input itself."""
    candidate = input_path.with_suffix(output_format.extension)
    if candidate.resolve() == input_path.resolve():
        candidate = input_path.with_name(f"{input_path.stem}_ebook{output_format.extension}")
    return candidate


class EbookConverter:
    """Converts PDF files into e-books.

    One instance runs one conversion at a time; use separate instances for
    concurrent runs.
    """

    def __init__(
        self,
        ocr_engine: OCREngine | None = None,
        format_converter: FormatConverter | None = None,
    ) -> None:
        self._ocr_engine = ocr_engine
        self._format_converter = format_converter
        self._active_engine: OCREngine | None = None
        self._cancel_event = threading.Event()
        self._state = ConversionState.IDLE
        self.progress: ProgressReporter = ProgressReporter()

    @property
    def state(self) -> ConversionState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation; honoured between pages and between stages."""
        logger.info("Cancellation requested")
        self._cancel_event.set()
        if self._active_engine is not None:
            self._active_engine.cancel()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _advance(self, state: ConversionState) -> None:
        if state == ConversionState.FAILED:
            self._state = state
            return
        if self._state == ConversionState.FAILED or (
            _STATE_ORDER.index(state) < _STATE_ORDER.index(self._state)
        ):
            raise RuntimeError(f"Invalid state transition {self._state.name} → {state.name}")
        self._state = state

    def _check_cancel(self, stage: str) -> None:
        if self._cancel_event.is_set():
            raise ConversionCancelled(stage=stage)

    def _enter(self, state: ConversionState, stage: ConversionStage) -> None:
        self._check_cancel(state.name.lower())
        self._advance(state)
        self.progress.emit(stage)
        logger.info(f"[{stage.percent}%] {stage.label}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def convert(
        self,
        input_path: str | Path,
        output_path: str | Path | None = None,
        config: ConversionConfig | dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ConversionResult:
        """Convert *input_path* into an e-book.

        Args:
            input_path: Source PDF.
            output_path: Destination; defaults to the input path with the
                output format's extension.
            config: Options, as a ConversionConfig or a dict of overrides.
            on_progress: Optional callback receiving ProgressEvent objects.

        Returns:
            ConversionResult describing the written file.

        Raises:
            ConfigError: Invalid options.
            ConversionIOError: Input missing or unreadable, temp/output I/O failure.
            OCRError: OCR engine could not be initialized.
            PackagingError: Output could not be written.
            ConversionCancelled: cancel() was called during the run.
            PdfEbookError: Any other failure, wrapped for the stage it escaped.
        """
        if config is None:
            config = ConversionConfig()
        elif isinstance(config, dict):
            config = ConversionConfig.from_dict(config)
        config.validate()

        input_path = Path(input_path)
        if not input_path.is_file():
            raise ConversionIOError(str(input_path), "read", "file not found")
        output = (
            Path(output_path)
            if output_path
            else default_output_path(input_path, config.output_format)
        )

        self._state = ConversionState.IDLE
        self._cancel_event.clear()
        self.progress = ProgressReporter(on_progress)
        started = time.monotonic()

        try:
            writable, reason = check_writable(output.parent)
            if not writable:
                raise ConversionIOError(str(output), "write", reason)
            input_size = input_path.stat().st_size
            resolved = resolve_config(config, input_size)
            result = self._run(input_path, output, resolved, input_size)
        except ConversionCancelled:
            self._advance(ConversionState.FAILED)
            logger.warning(f"Conversion of {input_path.name} cancelled")
            raise
        except PdfEbookError as e:
            self._advance(ConversionState.FAILED)
            logger.error(f"Conversion of {input_path.name} failed: {e}")
            raise
        except OSError as e:
            self._advance(ConversionState.FAILED)
            logger.error(f"Conversion of {input_path.name} failed: {e}")
            raise ConversionIOError(str(e.filename or input_path), "access", e.strerror) from e
        except Exception as e:
            failed_state = self._state
            self._advance(ConversionState.FAILED)
            error = self._stage_error(failed_state, e, input_path, output)
            logger.error(
                f"Conversion of {input_path.name} failed during {failed_state.name.lower()}: {e}"
            )
            raise error from e
        finally:
            self._active_engine = None

        result.elapsed_seconds = round(time.monotonic() - started, 2)
        logger.info(
            f"Converted {input_path.name} → {result.output_path.name}: "
            f"{result.page_count} pages, "
            f"{result.output_size / BYTES_PER_MB:.2f} MB ({result.compression_ratio}% smaller) "
            f"in {result.elapsed_seconds:.1f}s"
        )
        return result

    def _run(
        self,
        input_path: Path,
        output_path: Path,
        resolved: ResolvedConfig,
        input_size: int,
    ) -> ConversionResult:
        config = resolved.config
        warnings: list[str] = []

        with ExitStack() as stack:
            work_dir = stack.enter_context(temp_workspace())

            self._enter(ConversionState.LOADING, ConversionStage.LOADING)
            source = stack.enter_context(SourceDocument(input_path))
            page_count = source.page_count

            self._enter(ConversionState.OCR_DETECTION, ConversionStage.ANALYZING)
            ocr_run: OCRRun | None = None
            if (config.enable_ocr or config.auto_detect_scanned) and is_scanned_document(source):
                ocr_run = self._run_ocr(source, config, stack)

            self._enter(ConversionState.METADATA_EXTRACTION, ConversionStage.METADATA)
            metadata = extract_metadata(input_path)

            self._enter(ConversionState.RASTERIZATION, ConversionStage.STRUCTURE)
            package_root = work_dir / "book"
            self.progress.emit(ConversionStage.PAGES)
            rasterizer = PageRasterizer(resolved, self._cancel_event)
            artifacts = rasterizer.rasterize(
                input_path,
                page_count,
                package_root / "OEBPS" / "images",
                on_page=self.progress.span(ConversionStage.PAGES, PAGES_PROGRESS_SPAN),
            )
            self._attach_text(artifacts, source, ocr_run)

            self._enter(ConversionState.CONTENT_GENERATION, ConversionStage.CONTENT)
            tree = ContentGenerator().build(
                package_root,
                metadata,
                artifacts,
                config,
                identifier=book_identifier(input_path),
                language=dc_language(config.ocr_languages),
            )

            self._enter(ConversionState.PACKAGING, ConversionStage.PACKAGING)
            adapter = FormatAdapter(EpubPackager(), self._format_converter)

            self._enter(ConversionState.FORMAT_ADAPTATION, ConversionStage.FORMAT)
            adapted = adapter.adapt(tree, artifacts, output_path, config.output_format, work_dir)
            warnings.extend(adapted.warnings)

            output_size = adapted.output_path.stat().st_size
            if config.optimize_for_device:
                self._enter(ConversionState.DEVICE_OPTIMIZATION, ConversionStage.DEVICE)
                warnings.extend(self._device_warnings(output_size, config))

        self._advance(ConversionState.COMPLETE)
        self.progress.emit(ConversionStage.COMPLETE)

        placeholders = sum(1 for a in artifacts if a.is_placeholder)
        if placeholders:
            warnings.append(f"{placeholders} page(s) could not be rendered and were left blank")

        return ConversionResult(
            output_path=adapted.output_path,
            output_size=output_size,
            input_size=input_size,
            compression_ratio=compression_ratio(input_size, output_size),
            elapsed_seconds=0.0,
            page_count=len(artifacts),
            format_name=adapted.format.display_name,
            warnings=warnings,
            ocr_performed=ocr_run is not None,
            average_confidence=ocr_run.average_confidence if ocr_run else 0.0,
            placeholder_pages=placeholders,
        )

    def _run_ocr(
        self, source: SourceDocument, config: ConversionConfig, stack: ExitStack
    ) -> OCRRun:
        """Recognize all pages with the run's OCR engine."""
        self.progress.emit(ConversionStage.OCR)
        engine = self._ocr_engine or OCREngine()
        self._active_engine = engine
        stack.callback(engine.terminate)
        engine.clear_cancel()
        if self._cancel_event.is_set():
            engine.cancel()

        return OCRProcessor(engine).process(
            source,
            config.ocr_languages,
            on_page=self.progress.span(ConversionStage.OCR, OCR_PROGRESS_SPAN),
        )

    def _stage_error(
        self, state: ConversionState, error: Exception, input_path: Path, output_path: Path
    ) -> PdfEbookError:
        """Wrap an unexpected exception in the error type of the stage it escaped."""
        reason = f"{type(error).__name__}: {error}"
        if state == ConversionState.OCR_DETECTION and self._active_engine is not None:
            return OCRError(reason)
        if state in _READ_STATES:
            return ConversionIOError(str(input_path), "read", reason)
        if state in _WRITE_STATES:
            return PackagingError(str(output_path), reason)
        return PdfEbookError("Conversion failed", details=reason)

    @staticmethod
    def _attach_text(
        artifacts: list[PageArtifact], source: SourceDocument, ocr_run: OCRRun | None
    ) -> None:
        for artifact in artifacts:
            if ocr_run is not None:
                artifact.text = ocr_run.text_for(artifact.page_number)
                artifact.confidence = ocr_run.confidence_for(artifact.page_number)
            else:
                artifact.text = source.page_text(artifact.page_number - 1).strip()

    @staticmethod
    def _device_warnings(output_size: int, config: ConversionConfig) -> list[str]:
        size_mb = output_size / BYTES_PER_MB
        if size_mb <= config.max_file_size_mb:
            return []
        warning = (
            f"File size ({size_mb:.2f} MB) exceeds the {config.max_file_size_mb} MB "
            f"device transfer limit"
        )
        logger.warning(warning)
        return [warning]
