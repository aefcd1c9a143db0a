"""Section-level indexing and budgeted retrieval for reference documentation."""

__version__ = "0.1.0"
