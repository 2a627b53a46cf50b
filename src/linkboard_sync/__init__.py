"""Bidirectional sync engine for the Linkboard bookmarking tool."""

__version__ = "0.4.0"
