"""Student progress tracking, content unlocking and new-content notifications."""

__version__ = "0.1.0"
