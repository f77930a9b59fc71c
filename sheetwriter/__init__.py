"""Spreadsheet template rendering support."""

__version__ = "0.4.0"
