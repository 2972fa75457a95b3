"""Prompt-to-code generation service with a streaming tool loop and project-aware retrieval."""

__version__ = "0.1.0"
