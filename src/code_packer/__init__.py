"""Concatenate a directory tree, or a diff between two git branches, into one text file."""

__version__ = "0.3.0"
