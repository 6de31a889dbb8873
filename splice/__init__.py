"""splice: timeline evaluation and render pipeline for a multi-track video editor."""

__version__ = "0.1.0"
