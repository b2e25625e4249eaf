"""Threadline: backend for an embeddable threaded comment widget."""

__version__ = "1.6.40"
