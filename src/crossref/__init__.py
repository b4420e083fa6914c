"""
News cross-reference pipeline.

Ingests syndication feeds, groups articles into story clusters and only
releases a story for synthesis once enough independent outlets cover it.
"""

__version__ = "0.1.0"
