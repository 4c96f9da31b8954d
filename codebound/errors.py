"""Exception types raised by the discovery engine."""

from __future__ import annotations


class CodeboundError(Exception):
    """Base class for every error raised by codebound."""


class InvalidRootError(CodeboundError):
    """The project root does not exist or is not a directory."""


class ExtractionError(CodeboundError):
    """A single file could not be turned into declaration nodes."""


class BoundaryFileError(CodeboundError):
    """A user-supplied boundary file is missing or malformed."""
