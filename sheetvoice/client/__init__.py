"""
Client package for communicating with the conversion API server.
"""

from .api_client import APIClient, upload_and_convert

__all__ = ["APIClient", "upload_and_convert"]
