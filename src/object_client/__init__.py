"""Object Client - session negotiation and chunked transfers for an object storage network."""

__version__ = "0.1.0"
