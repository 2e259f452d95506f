"""Token metadata retrieval.

Metadata is best effort: any failure to fetch or parse it yields an empty
document and never aborts a window.
"""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

IPFS_SCHEME = 'ipfs://'

class MetadataFetcher:
    """Fetches JSON metadata documents over HTTP(S), rewriting ipfs:// URIs"""

    def __init__(self, gateway: str = 'https://ipfs.io/ipfs/', timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.gateway = gateway if gateway.endswith('/') else gateway + '/'
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_uri(self, uri: str) -> str:
        if uri.startswith(IPFS_SCHEME):
            return self.gateway + uri[len(IPFS_SCHEME):]
        return uri

    def fetch(self, uri: str) -> Dict[str, Any]:
        """Fetch and parse the document at ``uri``; ``{}`` on any failure"""
        if not uri:
            return {}

        url = self.resolve_uri(uri)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            document = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to fetch metadata from {url}: {e}")
            return {}

        if not isinstance(document, dict):
            logger.warning(f"Metadata at {url} is not a JSON object")
            return {}
        return document
