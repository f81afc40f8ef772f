"""
Viewer preference models and their encrypted persistence.

The preference document is JSON, encrypted with Fernet and stored in S3.
Rendering code only reads it.
"""

from .models import State, ToggleState, Viewer

__all__ = ["State", "ToggleState", "Viewer"]
