"""Ad generation pipeline: product photo in, advertisement image out."""

__version__ = "1.0.0"
