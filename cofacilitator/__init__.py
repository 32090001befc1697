"""Live lecture transcription relay with an AI question desk."""

__version__ = "0.1.0"
