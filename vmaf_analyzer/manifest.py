"""
Master Manifest Loading

Fetches an HLS master playlist over HTTP(S) and returns its variants. Only
the bandwidth and media URI of each EXT-X-STREAM-INF entry are used.
"""

import logging
from typing import List
from urllib.parse import urljoin

import m3u8
import requests

from .errors import FetchError
from .media import Variant

logger = logging.getLogger(__name__)


def parse_master_playlist(content: str, base_url: str) -> List[Variant]:
    """
    Parse master playlist text into variants, in manifest order.

    Relative variant URIs are resolved against base_url.

    Raises:
        FetchError: not a master playlist, or a variant lacks a bandwidth
    """
    try:
        playlist = m3u8.loads(content, uri=base_url)
    except Exception as e:
        raise FetchError(f"Failed to decode master manifest: {e}")

    if not playlist.is_variant:
        raise FetchError("Invalid manifest format, must be a master manifest")

    variants = []
    for entry in playlist.playlists:
        bandwidth = entry.stream_info.bandwidth if entry.stream_info else None
        if bandwidth is None:
            raise FetchError(f"Variant {entry.uri} has no BANDWIDTH attribute")
        variants.append(Variant(uri=urljoin(base_url, entry.uri), bandwidth=int(bandwidth)))

    if not variants:
        raise FetchError("Master manifest has no variants")

    return variants


def fetch_master_playlist(url: str, timeout: float = 30.0) -> List[Variant]:
    """
    Download and parse a master playlist.

    Args:
        url: Manifest URL
        timeout: Request timeout in seconds

    Returns:
        Variants in manifest order

    Raises:
        FetchError: network failure, HTTP error status or invalid manifest
    """
    logger.info(f"Retrieving master manifest from URI {url!r}")

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout:
        raise FetchError(f"Timed out fetching master manifest ({url})")
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Failed to fetch master manifest ({url}): {e}")

    return parse_master_playlist(response.text, url)


def sort_by_bandwidth(variants: List[Variant]) -> List[Variant]:
    """Variants in ascending bandwidth order (stable for equal bandwidths)."""
    return sorted(variants, key=lambda v: v.bandwidth)
