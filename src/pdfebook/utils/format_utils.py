"""
PdfEbook - Format Utilities Module

Shared helpers for turning sizes, durations and ratios into the short
strings printed by the CLI and written to the log.
"""

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB")
    """
    if size_bytes <= 0:
        return "0 B"

    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    unit = _SIZE_UNITS[unit_index]
    if unit_index == 0 or size >= 100:
        return f"{int(size)} {unit}"
    if size >= 10:
        return f"{size:.1f} {unit}"
    return f"{size:.2f} {unit}"


def format_elapsed_time(seconds: float) -> str:
    """Format elapsed time as "45s", "2m 30s" or "1h 5m 0s"."""
    total = max(0, int(seconds))

    if total < 60:
        return f"{total}s"

    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"

    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


def format_compression_ratio(ratio: float) -> str:
    """Format a size reduction percentage; negative values mean the output grew."""
    if ratio < 0:
        return f"+{abs(ratio):.1f}% larger"
    return f"{ratio:.1f}% smaller"
