"""traitcore: per-user identity and personality trait consolidation."""

__version__ = "0.1.0"
