"""
PdfEbook - Custom Exceptions Module

This module defines custom exception classes for the failure cases of a
conversion run. Page-level errors (RenderError, OCRError raised for a single
page) are absorbed by the component that raises them; everything else
reaches the caller of ``EbookConverter.convert``.
"""


class PdfEbookError(Exception):
    """Base exception for all PdfEbook errors.

    All custom exceptions should inherit from this class to allow
    catching any PdfEbook-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ConfigError(PdfEbookError):
    """Raised when conversion options are invalid (unsupported format, bad range)."""

    def __init__(self, setting_name: str | None = None, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            setting_name: Optional name of the problematic setting
            reason: Optional reason for the error
        """
        self.setting_name = setting_name
        self.reason = reason

        if setting_name:
            msg = f"Configuration error for '{setting_name}'"
        else:
            msg = "Configuration error"

        if reason:
            msg += f": {reason}"

        super().__init__(msg)


class ConversionIOError(PdfEbookError):
    """Raised when reading the input, writing the output or using the temp dir fails.

    Note: named to avoid shadowing the builtin IOError.
    """

    def __init__(self, path: str, operation: str = "access", reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            path: Path that couldn't be used
            operation: The operation that was attempted (read, write, etc.)
            reason: Optional reason for the failure
        """
        self.path = path
        self.operation = operation
        self.reason = reason

        msg = f"Cannot {operation} '{path}'"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg, details=f"path={path}, operation={operation}")


class RenderError(PdfEbookError):
    """Raised when a single page cannot be rasterized or encoded."""

    def __init__(self, page_number: int, reason: str | None = None) -> None:
        self.page_number = page_number
        self.reason = reason

        msg = f"Failed to render page {page_number}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg, details=f"page={page_number}")


class OCRError(PdfEbookError):
    """Raised when the OCR engine cannot be initialized or a page cannot be recognized."""

    def __init__(
        self,
        reason: str,
        page_number: int | None = None,
        languages: tuple[str, ...] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            reason: Reason for the failure
            page_number: Optional page that failed recognition
            languages: Optional language set the engine was initialized with
        """
        self.reason = reason
        self.page_number = page_number
        self.languages = languages

        if page_number is not None:
            msg = f"OCR failed for page {page_number}: {reason}"
        else:
            msg = f"OCR failed: {reason}"

        details = None
        if languages:
            details = f"languages={'+'.join(languages)}"

        super().__init__(msg, details=details)


class PackagingError(PdfEbookError):
    """Raised when the output archive or document cannot be written."""

    def __init__(self, output_path: str, reason: str | None = None) -> None:
        self.output_path = output_path
        self.reason = reason

        msg = f"Packaging failed for: {output_path}"
        if reason:
            msg += f" - {reason}"

        super().__init__(msg, details=f"path={output_path}")


class ExternalToolError(PdfEbookError):
    """Raised when an external format-conversion tool fails or is unavailable."""

    def __init__(
        self,
        tool: str,
        reason: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            tool: Name of the external tool
            reason: Optional reason for the failure
            exit_code: Optional exit code from the tool process
        """
        self.tool = tool
        self.reason = reason
        self.exit_code = exit_code

        msg = f"External tool '{tool}' failed"
        if reason:
            msg += f" - {reason}"

        details = None
        if exit_code is not None:
            details = f"exit_code={exit_code}"

        super().__init__(msg, details=details)


class ExternalToolTimeoutError(ExternalToolError):
    """Raised when an external tool exceeds its wall-clock timeout."""

    def __init__(self, tool: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(tool, reason=f"timed out after {timeout_seconds}s")


class ConversionCancelled(PdfEbookError):
    """Raised when a conversion run is aborted through ``cancel()``.

    This is a deliberate abort rather than a failure.
    """

    def __init__(self, stage: str | None = None) -> None:
        self.stage = stage
        msg = "Conversion cancelled by user"
        super().__init__(msg, details=f"stage={stage}" if stage else None)


# Exception hierarchy summary:
# PdfEbookError (base)
# ├── ConfigError
# ├── ConversionIOError
# ├── RenderError
# ├── OCRError
# ├── PackagingError
# ├── ExternalToolError
# │   └── ExternalToolTimeoutError
# └── ConversionCancelled
