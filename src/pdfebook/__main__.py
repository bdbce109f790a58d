#!/usr/bin/env python3
"""
PdfEbook - Entry point for python -m pdfebook

This module allows the package to be run as a module:
    python -m pdfebook convert book.pdf
"""

import sys

from pdfebook import main

if __name__ == "__main__":
    sys.exit(main())
