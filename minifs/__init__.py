"""A small Unix-style block file system kept in memory, with an image builder and tools."""

__version__ = "0.1.0"