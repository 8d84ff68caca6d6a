"""contentflow - content moderation pipeline backed by Redis streams."""

__version__ = "0.1.0"
