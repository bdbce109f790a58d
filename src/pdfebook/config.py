"""
PdfEbook - Configuration Module

This module contains the application constants and paths used by the package.
"""

import logging
import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "PdfEbook"
APP_VERSION: Final[str] = "1.0.0"
APP_PUBLISHER: Final[str] = "PdfEbook Converter"
APP_ISSUES: Final[str] = "https://github.com/pdfebook/pdfebook/issues"


# ============================================================================
# Configuration Directory
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/pdfebook")
SETTINGS_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: int = logging.INFO
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_NAME: Final[str] = "PdfEbook"
