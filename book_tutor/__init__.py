"""AI tutor service: a streaming, tool-augmented conversation core for teaching from books."""

__version__ = "0.1.0"
