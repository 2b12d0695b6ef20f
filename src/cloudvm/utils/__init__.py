"""Shared utilities for cloudvm."""

from ._logging import LogFormatType, create_logger
from ._paths import get_cloudvm_log_dir, get_cloudvm_log_file

__all__ = [
    "LogFormatType",
    "create_logger",
    "get_cloudvm_log_dir",
    "get_cloudvm_log_file",
]
