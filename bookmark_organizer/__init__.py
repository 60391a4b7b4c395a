"""LLM-driven reorganization of browser bookmark trees."""

__version__ = "0.1.0"
