"""
Utility functions - Pure functions with no I/O.
These can be used across all layers.
"""
from .document_utils import display_value, format_file_size

__all__ = [
    "display_value",
    "format_file_size"
]
