"""Codebound — automatic module boundary discovery for existing codebases."""

__version__ = "0.3.0"
