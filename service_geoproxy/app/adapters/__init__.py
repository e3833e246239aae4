"""
Adapters for upstream collaborators.
"""

from .ip_api_client import IPApiClient, UpstreamQuery
from .reverse_resolver import ReverseResolver

__all__ = ["IPApiClient", "ReverseResolver", "UpstreamQuery"]
