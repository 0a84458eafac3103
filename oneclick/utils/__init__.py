"""
oneclick.utils - Utility functions and helpers.

This package contains shared utilities for:
- Logging configuration
- Command line items and link files
- Printf-like output formats
"""

from oneclick.utils.logging import (
    get_item_logger,
    get_logger,
    ItemLogAdapter,
    mask_sensitive_data,
    mask_url_sensitive_parts,
    setup_logging,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "get_item_logger",
    "ItemLogAdapter",
    "mask_sensitive_data",
    "mask_url_sensitive_parts",
]
