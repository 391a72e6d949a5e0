# storylab/figma_urls.py
"""
The one place that knows how Figma URLs and node ids are shaped.

    https://www.figma.com/design/<fileKey>/<title>?node-id=12-34
    https://www.figma.com/file/<fileKey>/<title>
    https://www.figma.com/proto/<fileKey>/<title>?node-id=12%3A34
"""

import re
from typing import List, NamedTuple, Optional
from urllib.parse import parse_qs, unquote, urlparse

FILE_MARKERS = ("file", "design", "proto", "board")

_FILE_KEY_RE = re.compile(r"^[A-Za-z0-9]+$")
_LOOSE_FILE_RE = re.compile(r"figma\.com/(?:file|design|proto|board)/([A-Za-z0-9]+)")
_LOOSE_NODE_RE = re.compile(r"node-id=([^&#]+)")


class FigmaLocation(NamedTuple):
    file_id: str
    node_id: Optional[str] = None


def extract_file_id(url: str) -> Optional[str]:
    if not url:
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        parsed = None

    if parsed is not None and parsed.netloc.endswith("figma.com") and parsed.path:
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) >= 2 and parts[0] in FILE_MARKERS and _FILE_KEY_RE.match(parts[1]):
            return parts[1]

    match = _LOOSE_FILE_RE.search(url)
    return match.group(1) if match else None


def extract_node_id(url: str) -> Optional[str]:
    if not url:
        return None
    try:
        query = parse_qs(urlparse(url.strip()).query)
    except ValueError:
        query = {}
    values = query.get("node-id")
    if values and values[0]:
        return values[0]

    match = _LOOSE_NODE_RE.search(url)
    return unquote(match.group(1)) if match else None


def parse_figma_url(url: str) -> Optional[FigmaLocation]:
    file_id = extract_file_id(url)
    if not file_id:
        return None
    return FigmaLocation(file_id=file_id, node_id=extract_node_id(url))


def node_id_variants(node_id: str) -> List[str]:
    """
    The same node shows up as `12-34` in browser URLs and `12:34` in the API.
    Returns the id as given followed by its alternate encoding, if any.
    """
    if "-" in node_id:
        alternate = node_id.replace("-", ":")
    elif ":" in node_id:
        alternate = node_id.replace(":", "-")
    else:
        return [node_id]
    return [node_id, alternate]
