"""
oneclick.core - Retry, wait and transfer orchestration.

This package contains:
- Outcome codes and the Outcome type
- The per-item wait budget
- Toolkit configuration
- The retry ladder, the final transfer executor and the batch runner
"""

from oneclick.core.budget import WaitBudget
from oneclick.core.config import CaptchaCredentials, ToolkitConfig
from oneclick.core.errors import (
    ErrorKind,
    HosterError,
    Outcome,
    aggregate_exit_code,
    kind_from_exception,
)

__all__ = [
    "CaptchaCredentials",
    "ErrorKind",
    "HosterError",
    "Outcome",
    "ToolkitConfig",
    "WaitBudget",
    "aggregate_exit_code",
    "kind_from_exception",
]
