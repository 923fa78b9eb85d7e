"""Vertex Studio - image generation, editing and animation over Vertex AI."""

__version__ = "0.1.0"
