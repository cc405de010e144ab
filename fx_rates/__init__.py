"""Exchange rate retrieval and caching service."""

__version__ = "0.1.0"
