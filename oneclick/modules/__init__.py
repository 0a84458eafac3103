"""Site modules for one-click hosters."""

from __future__ import annotations

from typing import Optional

from oneclick.modules.base import (
    FetchResult,
    ItemSession,
    ListEntry,
    ModuleRegistry,
    ProbeResult,
    SiteModule,
    UploadResult,
)
from oneclick.modules.fallback import FallbackModule
from oneclick.modules.pixeldrain import (
    PixeldrainAuthError,
    PixeldrainError,
    PixeldrainModule,
    PixeldrainNotFoundError,
    PixeldrainRateLimitError,
)


def default_registry(pixeldrain_api_key: Optional[str] = None) -> ModuleRegistry:
    """Build the registry of bundled site modules.

    Args:
        pixeldrain_api_key: Optional Pixeldrain API key.

    Returns:
        Registry in lookup order.
    """
    return ModuleRegistry([PixeldrainModule(api_key=pixeldrain_api_key)])


__all__ = [
    "FallbackModule",
    "FetchResult",
    "ItemSession",
    "ListEntry",
    "ModuleRegistry",
    "PixeldrainAuthError",
    "PixeldrainError",
    "PixeldrainModule",
    "PixeldrainNotFoundError",
    "PixeldrainRateLimitError",
    "ProbeResult",
    "SiteModule",
    "UploadResult",
    "default_registry",
]
