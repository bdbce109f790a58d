"""
OCR Engine - RapidOCR lifecycle for one conversion run.

The engine is created lazily by ``initialize()`` and reused for every page
of the run. Re-initializing with the same languages is a no-op; a different
language set tears the backend down and loads new models.

States::

    UNINITIALIZED → INITIALIZING → READY → TERMINATED
"""

import logging
import threading
from collections.abc import Callable, Sequence
from enum import Enum, auto
from typing import Any

import numpy as np
from PIL import Image

from pdfebook.constants import OCR_INIT_ATTEMPTS, OCR_LIMIT_SIDE_LEN, OCR_TEXT_SCORE
from pdfebook.utils.exceptions import OCRError

logger = logging.getLogger(__name__)

# Backend: callable taking an RGB array and returning an object with
# ``boxes``, ``txts`` and ``scores`` (the RapidOCR output shape)
Backend = Callable[[np.ndarray], Any]
BackendFactory = Callable[[tuple[str, ...]], Backend]

# Tesseract-style language codes → RapidOCR recognition model names
_LANGUAGE_MODELS: dict[str, str] = {
    "eng": "EN",
    "por": "LATIN",
    "spa": "LATIN",
    "fra": "LATIN",
    "deu": "LATIN",
    "ita": "LATIN",
    "nld": "LATIN",
    "chi_sim": "CH",
    "chi_tra": "CHINESE_CHT",
    "jpn": "JAPAN",
    "kor": "KOREAN",
    "ara": "ARABIC",
}


def recognition_model_name(languages: Sequence[str]) -> str:
    """Pick one RapidOCR recognition model for a language list.

    Several Latin-script languages share the LATIN model; otherwise the
    first language decides.
    """
    models = [_LANGUAGE_MODELS.get(lang, "LATIN") for lang in languages]
    if not models:
        return "LATIN"
    if len(models) > 1 and all(m in ("EN", "LATIN") for m in models):
        return "LATIN"
    return models[0]


def create_rapidocr_backend(languages: tuple[str, ...]) -> Backend:
    """Build a RapidOCR instance on onnxruntime for *languages*."""
    from rapidocr import EngineType, LangRec, RapidOCR

    lang_rec = getattr(LangRec, recognition_model_name(languages))
    params = {
        "Det.engine_type": EngineType.ONNXRUNTIME,
        "Det.limit_side_len": OCR_LIMIT_SIDE_LEN,
        "Rec.engine_type": EngineType.ONNXRUNTIME,
        "Rec.lang_type": lang_rec,
        "Global.text_score": OCR_TEXT_SCORE,
    }
    return RapidOCR(params=params)


class OCREngineState(Enum):
    UNINITIALIZED = auto()
    INITIALIZING = auto()
    READY = auto()
    TERMINATED = auto()


def _box_bounds(box: Any) -> tuple[float, float, float, float] | None:
    """Return (x0, y0, x1, y1) for a RapidOCR quadrilateral."""
    points = box.tolist() if hasattr(box, "tolist") else list(box)
    if len(points) < 4:
        return None
    xs = [float(p[0]) for p in points]
    ys = [float(p[1]) for p in points]
    return min(xs), min(ys), max(xs), max(ys)


def group_text_lines(spans: list[tuple[tuple[float, float, float, float], str]]) -> str:
    """Group recognized spans into text lines, top-to-bottom then left-to-right."""
    if not spans:
        return ""

    spans_sorted = sorted(spans, key=lambda item: (item[0][1], item[0][0]))
    lines: list[str] = []
    current_line: list[tuple[float, str]] = []
    current_mid: float | None = None
    current_height: float | None = None

    for (x0, y0, _x1, y1), text in spans_sorted:
        midpoint = (y0 + y1) / 2.0
        height = (y1 - y0) or 1.0

        if current_line and current_mid is not None and current_height is not None:
            tolerance = max(current_height, height) * 0.6
            if abs(midpoint - current_mid) <= tolerance:
                current_line.append((x0, text))
                current_mid = (current_mid + midpoint) / 2.0
                current_height = (current_height + height) / 2.0
                continue
            lines.append(" ".join(t for _, t in sorted(current_line, key=lambda item: item[0])))

        current_line = [(x0, text)]
        current_mid = midpoint
        current_height = height

    if current_line:
        lines.append(" ".join(t for _, t in sorted(current_line, key=lambda item: item[0])))

    return "\n".join(lines)


class OCREngine:
    """Recognition engine owned by one conversion run."""

    def __init__(self, backend_factory: BackendFactory | None = None) -> None:
        self._factory = backend_factory or create_rapidocr_backend
        self._backend: Backend | None = None
        self._languages: tuple[str, ...] | None = None
        self._state = OCREngineState.UNINITIALIZED
        self.cancel_event = threading.Event()

    @property
    def state(self) -> OCREngineState:
        return self._state

    @property
    def languages(self) -> tuple[str, ...] | None:
        return self._languages

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def initialize(self, languages: Sequence[str]) -> None:
        """Load the backend for *languages*.

        Raises:
            OCRError: If the backend cannot be created after all attempts.
        """
        wanted = tuple(languages)
        if self._state == OCREngineState.READY and self._languages == wanted:
            logger.debug("OCR engine already initialized for these languages")
            return

        if self._backend is not None:
            self._release_backend()

        self._state = OCREngineState.INITIALIZING
        last_error: Exception | None = None

        for attempt in range(1, OCR_INIT_ATTEMPTS + 1):
            try:
                self._backend = self._factory(wanted)
                self._languages = wanted
                self._state = OCREngineState.READY
                logger.info(f"OCR engine ready ({'+'.join(wanted)})")
                return
            except Exception as e:
                last_error = e
                logger.warning(f"OCR engine initialization attempt {attempt} failed: {e}")

        self._backend = None
        self._languages = None
        self._state = OCREngineState.UNINITIALIZED
        raise OCRError(
            f"engine initialization failed after {OCR_INIT_ATTEMPTS} attempts: {last_error}",
            languages=wanted,
        ) from last_error

    def recognize_page(self, image: Image.Image | np.ndarray) -> tuple[str, float]:
        """Recognize one page image.

        Returns:
            (text, confidence) with confidence in 0-100. A page the backend
            fails on yields ("", 0.0) and leaves the engine usable.

        Raises:
            OCRError: If the engine is not READY.
        """
        if self._state != OCREngineState.READY or self._backend is None:
            raise OCRError(f"engine is not ready (state {self._state.name})")

        if isinstance(image, Image.Image):
            array = np.asarray(image.convert("RGB"))
        else:
            array = image

        try:
            result = self._backend(array)
        except Exception as e:
            logger.warning(f"OCR recognition failed: {e}")
            return "", 0.0

        boxes = getattr(result, "boxes", None)
        txts = getattr(result, "txts", None)
        scores = getattr(result, "scores", None)
        if boxes is None or not txts:
            return "", 0.0

        spans = []
        kept_scores = []
        for box, text, score in zip(boxes, txts, scores or [0.0] * len(txts)):
            text = str(text).strip()
            bounds = _box_bounds(box)
            if not text or bounds is None:
                continue
            spans.append((bounds, text))
            kept_scores.append(float(score))

        if not spans:
            return "", 0.0

        confidence = sum(kept_scores) / len(kept_scores) * 100.0
        return group_text_lines(spans), round(confidence, 2)

    def cancel(self) -> None:
        """Request cancellation; checked by the caller between pages."""
        self.cancel_event.set()

    def clear_cancel(self) -> None:
        """Reset the cancellation flag before a new run."""
        self.cancel_event.clear()

    def _release_backend(self) -> None:
        self._backend = None
        self._languages = None

    def terminate(self) -> None:
        """Release the backend. Safe to call more than once."""
        if self._state == OCREngineState.TERMINATED:
            return
        self._release_backend()
        self._state = OCREngineState.TERMINATED
        logger.debug("OCR engine terminated")
