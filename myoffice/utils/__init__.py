"""Utility modules."""

from myoffice.utils.logger import get_logger

__all__ = ["get_logger"]
