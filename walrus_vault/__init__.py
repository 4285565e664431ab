"""Resilient client for storing and retrieving encrypted blobs on Walrus."""

__version__ = "0.1.0"
