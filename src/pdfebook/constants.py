"""
PdfEbook - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (strings, paths), use config.py.
"""

from typing import Final

# ============================================================================
# Size Constants
# ============================================================================

BYTES_PER_MB: Final[int] = 1024 * 1024

# ============================================================================
# Rendering
# ============================================================================

# Density used for e-reader page images
RENDER_DPI: Final[int] = 150
# Density used for OCR input images
OCR_RENDER_DPI: Final[int] = 300
PDF_POINTS_PER_INCH: Final[float] = 72.0
MIN_PAGE_NUMBER_WIDTH: Final[int] = 3

# ============================================================================
# Image Quality
# ============================================================================

DEFAULT_IMAGE_QUALITY: Final[int] = 85
DEFAULT_IMAGE_MAX_WIDTH: Final[int] = 1200
MAXIMUM_COMPRESSION_QUALITY_CAP: Final[int] = 70
MINIMUM_COMPRESSION_QUALITY_FLOOR: Final[int] = 90

# ============================================================================
# Sync Target Policy
# ============================================================================

SYNC_QUALITY_THRESHOLD: Final[int] = 70
SYNC_QUALITY_STEP: Final[int] = 20
SYNC_QUALITY_FLOOR: Final[int] = 50
SYNC_WIDTH_THRESHOLD: Final[int] = 1000
SYNC_WIDTH_STEP: Final[int] = 200
SYNC_WIDTH_FLOOR: Final[int] = 800

AUTO_TARGET_INPUT_FRACTION: Final[float] = 0.3
AUTO_TARGET_CAP_MB: Final[float] = 50.0
VERY_AGGRESSIVE_RATIO: Final[float] = 0.3
MODERATE_RATIO: Final[float] = 0.5

VERY_AGGRESSIVE_QUALITY_STEP: Final[int] = 30
VERY_AGGRESSIVE_QUALITY_FLOOR: Final[int] = 30
VERY_AGGRESSIVE_WIDTH_STEP: Final[int] = 400
VERY_AGGRESSIVE_WIDTH_FLOOR: Final[int] = 600

# ============================================================================
# Memory Profiles
# ============================================================================

LOW_MEMORY_CHUNK_SIZE: Final[int] = 5
BALANCED_CHUNK_SIZE: Final[int] = 10
HIGH_PERFORMANCE_CHUNK_SIZE: Final[int] = 20

RESOURCE_TIER_CONSTRAINED_GB: Final[float] = 2.0
RESOURCE_TIER_MODERATE_GB: Final[float] = 6.0

# ============================================================================
# Scanned Document Detection
# ============================================================================

SCAN_SAMPLE_PAGES: Final[int] = 5
SCAN_TEXT_THRESHOLD: Final[int] = 100

# ============================================================================
# OCR
# ============================================================================

OCR_INIT_ATTEMPTS: Final[int] = 2
OCR_LIMIT_SIDE_LEN: Final[int] = 4000
OCR_TEXT_SCORE: Final[float] = 0.3

# ============================================================================
# Device Limits
# ============================================================================

DEFAULT_MAX_FILE_SIZE_MB: Final[int] = 650

# ============================================================================
# Subprocess Timeouts (seconds)
# ============================================================================

FORMAT_CONVERSION_TIMEOUT: Final[int] = 300
