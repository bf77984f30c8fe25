"""Utility modules for duocaster."""

from .logger import setup_logger

__all__ = [
    "setup_logger",
]
