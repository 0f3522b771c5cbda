"""Common formatting helpers for console output."""

from typing import Final

BYTES_PER_KB: Final = 1024
SIZE_UNITS: Final = ("B", "KB", "MB", "GB", "TB")


def format_bytes(bytes_: float) -> str:
    """Format a byte count with the largest unit that keeps it below 1024.

    Args:
        bytes_: Number of bytes to format

    Returns:
        str: Formatted string such as ``"1.5 MB"``
    """
    value = float(bytes_)
    for unit in SIZE_UNITS[:-1]:
        if value < BYTES_PER_KB:
            return f"{value:.1f} {unit}"
        value /= BYTES_PER_KB
    return f"{value:.1f} {SIZE_UNITS[-1]}"


def format_endpoint(host: str, port: int) -> str:
    """Format a host and port the way clients type them into proxy settings."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
