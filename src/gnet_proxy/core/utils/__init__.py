"""Utility functions and helpers."""

from gnet_proxy.core.utils.log_config import LOG_DIR, configure_logging
from gnet_proxy.core.utils.utils import format_bytes, format_endpoint

__all__ = ["LOG_DIR", "configure_logging", "format_bytes", "format_endpoint"]
