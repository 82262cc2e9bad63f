"""treescan - scan directory trees into a queryable, cacheable model."""

__version__ = "0.3.0"
