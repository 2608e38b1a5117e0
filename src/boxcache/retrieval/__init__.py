"""
Retrieval package: fetching resources for the content store.

- base.py: Fetcher interface used by StoreHandle.add_all
- fetch.py: httpx-based fetcher with tenacity retries
"""

from boxcache.retrieval.base import Fetcher
from boxcache.retrieval.fetch import ResponseFetcher

__all__ = ["Fetcher", "ResponseFetcher"]
