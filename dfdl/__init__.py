"""Client library for peer-to-peer file sharing with chunked multi-peer downloads."""

__version__ = "0.1.0"