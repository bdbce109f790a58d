"""
PdfEbook - External Format Converters

MOBI and AZW3 are produced from an intermediate EPUB by an external tool.
The converter is pluggable; the default drives Calibre's ``ebook-convert``
with a wall-clock timeout.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from pdfebook.constants import FORMAT_CONVERSION_TIMEOUT
from pdfebook.utils.exceptions import ExternalToolError, ExternalToolTimeoutError

logger = logging.getLogger(__name__)


class FormatConverter(ABC):
    """Interface for EPUB → other e-book format converters."""

    name = "converter"

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when the tool can be run."""

    @abstractmethod
    def convert(self, source: Path, destination: Path, timeout: float) -> None:
        """Convert *source* into *destination*.

        Raises:
            ExternalToolError: If the conversion fails or the tool is missing.
            ExternalToolTimeoutError: If the tool exceeds *timeout* seconds.
        """


class CalibreFormatConverter(FormatConverter):
    """Runs Calibre's ``ebook-convert`` in a subprocess."""

    name = "ebook-convert"

    def __init__(self, executable: str | None = None) -> None:
        self._executable = executable

    def _resolve(self) -> str | None:
        return self._executable or shutil.which(self.name)

    def is_available(self) -> bool:
        return self._resolve() is not None

    def convert(
        self, source: Path, destination: Path, timeout: float = FORMAT_CONVERSION_TIMEOUT
    ) -> None:
        executable = self._resolve()
        if executable is None:
            raise ExternalToolError(self.name, "not found on PATH")

        cmd = [executable, str(source), str(destination)]
        logger.info(f"Running {self.name}: {source.name} → {destination.name}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise ExternalToolTimeoutError(self.name, timeout) from e
        except OSError as e:
            raise ExternalToolError(self.name, str(e)) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            reason = stderr[-1] if stderr else "conversion failed"
            raise ExternalToolError(self.name, reason, exit_code=result.returncode)

        if not destination.exists():
            raise ExternalToolError(self.name, f"no output written to {destination}")
