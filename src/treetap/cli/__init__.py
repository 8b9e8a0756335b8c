"""treetap command-line interface."""
