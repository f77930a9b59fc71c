"""Exceptions raised by the templating engine."""

from __future__ import annotations


class SheetwriterError(Exception):
    """Base class for all engine errors."""


class TemplateProcessingException(SheetwriterError, ValueError):
    """The template contains a construct whose rendered meaning is ambiguous.

    Raised when a formula range has one endpoint inside a repeat region and
    the other outside it. The template author has to fix the range.
    """

    def __init__(self, message: str, *, formula: str | None = None, reference: str | None = None):
        super().__init__(message)
        self.formula = formula
        self.reference = reference


class PackageFormatError(SheetwriterError):
    """A package part could not be read or is not safe to parse."""

    def __init__(self, message: str, *, part: str | None = None):
        super().__init__(message)
        self.part = part


class ConfigurationError(SheetwriterError, ValueError):
    """An engine setting has an unsupported value."""
