# storylab/design_tree.py
"""
Design-tree walking and frame extraction.

The Figma document is a finite tree of plain dicts (no cycles, guaranteed by
the service). Everything here is pure: the input tree is never mutated and
every call returns a freshly built list.
"""

from itertools import islice
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from storylab.entities import Frame, FrameMetadata

DesignNode = Dict[str, Any]
NodePredicate = Callable[[DesignNode], bool]

FRAME_LIKE_TYPES = frozenset({"FRAME", "COMPONENT", "COMPONENT_SET"})


def is_frame_like(node: DesignNode) -> bool:
    return node.get("type") in FRAME_LIKE_TYPES


def is_frame_with_id(node: DesignNode) -> bool:
    return node.get("type") == "FRAME" and bool(node.get("id"))


def iter_nodes(node: DesignNode) -> Iterator[DesignNode]:
    """Depth-first pre-order; children in array order."""
    yield node
    for child in node.get("children") or ():
        yield from iter_nodes(child)


def collect(root: DesignNode, predicate: NodePredicate, limit: Optional[int] = None) -> List[DesignNode]:
    """
    Collect the nodes matching `predicate` in document order.
    With `limit`, the walk stops as soon as that many matches are found.
    """
    matches = (node for node in iter_nodes(root) if predicate(node))
    if limit is not None:
        return list(islice(matches, max(limit, 0)))
    return list(matches)


def node_to_frame(node: DesignNode) -> Frame:
    box = node.get("absoluteBoundingBox") or {}
    return Frame(
        id=str(node.get("id", "")),
        name=node.get("name") or "",
        image_url="",
        metadata=FrameMetadata(
            width=box.get("width") or 0,
            height=box.get("height") or 0,
            type=node.get("type", ""),
        ),
    )


def extract_frames(document: DesignNode, max_frames: Optional[int] = None) -> Tuple[List[Frame], int]:
    """
    Returns (frames, total_found). Frames are truncated to the first
    `max_frames` in document order; total_found counts every match.
    """
    nodes = collect(document, is_frame_like)
    kept = nodes if max_frames is None else nodes[:max_frames]
    return [node_to_frame(n) for n in kept], len(nodes)


def preview_frames(document: DesignNode, limit: int) -> List[Frame]:
    return [node_to_frame(n) for n in collect(document, is_frame_with_id, limit=limit)]


def screen_names(document: DesignNode) -> List[str]:
    return [n["name"] for n in collect(document, is_frame_like) if n.get("name")]
