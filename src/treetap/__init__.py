"""treetap -- selector-driven action automation for accessibility node trees."""

__version__ = "0.3.0"
