"""Quotabar: a terminal dashboard for Claude OAuth usage windows."""

__version__ = "0.1.0"
