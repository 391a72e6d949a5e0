# storylab/import_service.py
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from storylab.config import StoryLabConfig
from storylab.design_tree import extract_frames, is_frame_like, node_to_frame, preview_frames
from storylab.entities import Frame, ImportResult
from storylab.errors import NodeNotFoundError, OversizedResponseError, StoryLabError, UnconfiguredError
from storylab.figma_client import FigmaClient

logger = logging.getLogger("storylab_backend")


def _probe_sizes(client: FigmaClient, urls: Dict[str, str], workers: int) -> Dict[str, int]:
    """
    HEAD every image URL concurrently. A failing probe is logged and
    skipped; it never cancels its siblings.
    """
    if not urls:
        return {}

    def probe(item):
        node_id, url = item
        try:
            return node_id, client.fetch_image_size(url)
        except StoryLabError as e:
            logger.warning(f"Failed to get image size for {node_id}: {e.message}")
            return node_id, None

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(urls)))) as pool:
        results = list(pool.map(probe, urls.items()))
    return {node_id: size for node_id, size in results if size is not None}


def with_images(
    frames: List[Frame],
    file_id: str,
    client: FigmaClient,
    batch_size: int = 10,
    *,
    probe_sizes: bool = False,
    probe_workers: int = 4,
) -> List[Frame]:
    """
    Resolve rendered image URLs batch by batch. A failed batch leaves its
    frames with an empty imageUrl and the remaining batches still run.
    """
    batch_size = max(1, batch_size)
    urls: Dict[str, str] = {}
    sizes: Dict[str, int] = {}
    ids = [f.id for f in frames]

    for start in range(0, len(ids), batch_size):
        batch = ids[start:start + batch_size]
        try:
            batch_urls = client.fetch_images(file_id, batch)
        except StoryLabError as e:
            logger.warning(f"Failed to get images for batch {start // batch_size + 1}: {e.message}")
            continue
        urls.update(batch_urls)
        if probe_sizes:
            sizes.update(_probe_sizes(client, batch_urls, probe_workers))

    return [
        frame.model_copy(update={"image_url": urls.get(frame.id, ""), "file_size": sizes.get(frame.id, frame.file_size)})
        for frame in frames
    ]


class FrameImporter:
    """
    Turns a Figma file (or one node of it) into a list of Frames, picking
    the cheapest strategy that still works:

        node      -> the requested frame, or the frames under a page node
                     (falls back to full on failure)
        full      -> whole document, frames enriched with images
        metadata  -> depth-limited document, no images (oversized files)
    """

    def __init__(self, client: FigmaClient, config: StoryLabConfig):
        self.client = client
        self.config = config

    def _enrich(self, frames: List[Frame], file_id: str) -> List[Frame]:
        return with_images(
            frames,
            file_id,
            self.client,
            self.config.image_batch_size,
            probe_sizes=self.config.probe_image_sizes,
            probe_workers=self.config.size_probe_workers,
        )

    def import_frames(self, file_id: str, node_id: Optional[str] = None) -> ImportResult:
        if node_id:
            try:
                logger.info(f"Attempting to get specific frame: {node_id}")
                result = self.import_node(file_id, node_id)
                logger.info("Successfully got specific frame")
                return result
            except UnconfiguredError:
                raise
            except StoryLabError as e:
                logger.warning(f"Failed to get specific frame {node_id}: {e.message}. Falling back to full file import")

        try:
            return self.import_full_file(file_id)
        except OversizedResponseError as e:
            logger.warning(f"{e.details}. Falling back to metadata-only import without images")
            return self.import_metadata_only(file_id)

    def import_node(self, file_id: str, node_id: str) -> ImportResult:
        node = self.client.fetch_node(file_id, node_id)
        if is_frame_like(node):
            frames, total = [node_to_frame(node)], 1
        else:
            # a page or group: import the frames under it
            frames, total = extract_frames(node, self.config.max_frames)
            if not frames:
                raise NodeNotFoundError(f"Node {node_id} contains no frames.")
            logger.info(f"Node {node_id} is a {node.get('type')}, importing {len(frames)} of {total} frames under it")

        frames = self._enrich(frames, file_id)
        # the node endpoint can answer for a node Figma refuses to render
        missing = [f.id for f in frames if not f.image_url]
        if missing:
            logger.warning(f"No rendered image for node(s) {', '.join(missing)}")
        return ImportResult(frames=frames, total_found=total, truncated=total > len(frames),
                            images_included=any(f.image_url for f in frames), strategy="node")

    def import_full_file(self, file_id: str) -> ImportResult:
        data = self.client.fetch_file(file_id)
        frames, total = extract_frames(data.get("document") or {}, self.config.max_frames)
        if total > len(frames):
            logger.warning(f"File contains {total} frames, limiting to {self.config.max_frames}")
        frames = self._enrich(frames, file_id)
        return ImportResult(frames=frames, total_found=total, truncated=total > len(frames),
                            images_included=any(f.image_url for f in frames), strategy="full")

    def import_metadata_only(self, file_id: str) -> ImportResult:
        data = self.client.fetch_file_metadata_only(file_id)
        frames, total = extract_frames(data.get("document") or {}, self.config.max_frames)
        return ImportResult(frames=frames, total_found=total, truncated=total > len(frames),
                            images_included=False, strategy="metadata")

    def preview(self, file_id: str, limit: Optional[int] = None) -> List[Frame]:
        """
        Bounded preview: the first `limit` frames with ids, with images.
        The walk stops early once the cap is reached.
        """
        limit = limit or self.config.preview_limit
        try:
            data = self.client.fetch_file(file_id)
        except OversizedResponseError:
            data = self.client.fetch_file_metadata_only(file_id)
        frames = preview_frames(data.get("document") or {}, limit)
        return with_images(frames, file_id, self.client, self.config.image_batch_size)
