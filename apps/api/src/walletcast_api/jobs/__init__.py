"""Recurring job entrypoints."""

__all__ = ["birthday"]
