"""Party search, linking and entry for an accounting client."""

__version__ = "0.1.0"
