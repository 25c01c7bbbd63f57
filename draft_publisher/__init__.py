"""Draft-to-published-document pipeline for the case documentation site."""

__version__ = "0.1.0"
