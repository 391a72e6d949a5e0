# storylab/figma_client.py
import logging
from typing import Any, Dict, Iterable, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from storylab.config import StoryLabConfig
from storylab.errors import (
    FigmaTimeoutError,
    NodeNotFoundError,
    OversizedResponseError,
    UpstreamError,
)
from storylab.figma_urls import node_id_variants

logger = logging.getLogger("storylab_backend")


def is_read_timeout(e: requests.RequestException) -> bool:
    """
    True for connect/read timeouts, including a body read that stalls after
    the headers arrived (requests wraps that one in a ConnectionError).
    """
    if isinstance(e, requests.Timeout):
        return True
    return isinstance(e, requests.ConnectionError) and bool(e.args) and isinstance(e.args[0], ReadTimeoutError)


class FigmaClient:
    """
    Thin wrapper over the Figma REST API.

    - Every call is bounded by `config.figma_timeout`.
    - Bodies whose declared Content-Length exceeds `config.max_response_bytes`
      are rejected before being read.
    - Non-2xx answers raise UpstreamError with the status mirrored.
    """

    def __init__(self, config: StoryLabConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.figma_api_base.rstrip("/")
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "FigmaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------------
    # Transport
    # -----------------------

    def _check_declared_size(self, resp: requests.Response) -> None:
        declared = resp.headers.get("Content-Length")
        if not declared or not declared.isdigit():
            return
        size = int(declared)
        if size > self.config.max_response_bytes:
            raise OversizedResponseError(size, self.config.max_response_bytes)
        if size > self.config.large_response_warning_bytes:
            logger.warning(f"Large Figma response detected: {round(size / 1024 / 1024)}MB ({resp.url})")

    def _open(self, url: str, *, params: Optional[Dict[str, Any]] = None, authenticated: bool = True,
             method: str = "get") -> requests.Response:
        headers = {"X-Figma-Token": self.config.require_figma_token()} if authenticated else {}
        return self._session.request(
            method.upper(),
            url,
            headers=headers,
            params=params,
            timeout=self.config.figma_timeout,
            stream=True,
        )

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            with self._open(url, params=params) as resp:
                if not 200 <= resp.status_code < 300:
                    raise UpstreamError(resp.status_code, details=(resp.text or resp.reason or "")[:500])
                self._check_declared_size(resp)
                return resp.json()
        except requests.RequestException as e:
            if is_read_timeout(e):
                raise FigmaTimeoutError(details=str(e)) from e
            raise UpstreamError(502, f"Figma API request failed: {e}") from e

    # -----------------------
    # API
    # -----------------------

    def fetch_file(self, file_id: str) -> Dict[str, Any]:
        return self._get_json(f"/files/{file_id}")

    def fetch_file_metadata_only(self, file_id: str) -> Dict[str, Any]:
        """
        Depth-limited file read: pages and their top-level children only.
        Used when the full document is too large to pull.
        """
        return self._get_json(f"/files/{file_id}", {"depth": self.config.metadata_depth})

    def fetch_node(self, file_id: str, node_id: str) -> Dict[str, Any]:
        """
        Returns the node's document subtree. Tries the id as given, then its
        alternate encoding (12-34 <-> 12:34).
        """
        tried = []
        for candidate in node_id_variants(node_id):
            tried.append(candidate)
            logger.info(f"Requesting node {candidate} from file {file_id}")
            try:
                data = self._get_json(f"/files/{file_id}/nodes", {"ids": candidate})
            except UpstreamError as e:
                if e.upstream_status not in (400, 404):
                    raise
                logger.info(f"Node {candidate} rejected by Figma ({e.upstream_status})")
                continue

            nodes = data.get("nodes") or {}
            entry = nodes.get(candidate)
            if entry and entry.get("document"):
                return entry["document"]
            logger.info(f"Node {candidate} missing from response (available: {', '.join(nodes) or 'none'})")

        raise NodeNotFoundError(
            f"Frame with ID {node_id} not found.",
            details=f"Tried ids: {', '.join(tried)}",
        )

    def fetch_images(self, file_id: str, node_ids: Iterable[str]) -> Dict[str, str]:
        """
        Rendered image URLs keyed by node id. Callers pass a bounded id list.
        Nodes Figma could not render are left out.
        """
        ids = [i for i in node_ids if i]
        if not ids:
            return {}
        data = self._get_json(
            f"/images/{file_id}",
            {
                "ids": ",".join(ids),
                "format": self.config.image_format,
                "scale": self.config.image_scale,
            },
        )
        if data.get("err"):
            raise UpstreamError(502, f"Figma image render failed: {data['err']}")
        images = data.get("images") or {}
        return {k: v for k, v in images.items() if v}

    def fetch_image_size(self, image_url: str) -> Optional[int]:
        try:
            with self._open(image_url, authenticated=False, method="head") as resp:
                if not 200 <= resp.status_code < 300:
                    raise UpstreamError(resp.status_code, f"Image size probe failed ({resp.status_code})")
                declared = resp.headers.get("Content-Length")
                return int(declared) if declared and declared.isdigit() else None
        except requests.RequestException as e:
            if is_read_timeout(e):
                raise FigmaTimeoutError(details=str(e)) from e
            raise UpstreamError(502, f"Image size probe failed: {e}") from e

    def download_image(self, image_url: str) -> bytes:
        try:
            with self._open(image_url, authenticated=False) as resp:
                if not 200 <= resp.status_code < 300:
                    raise UpstreamError(resp.status_code, f"Image download failed ({resp.status_code})")
                self._check_declared_size(resp)
                return resp.content
        except requests.RequestException as e:
            if is_read_timeout(e):
                raise FigmaTimeoutError(details=str(e)) from e
            raise UpstreamError(502, f"Image download failed: {e}") from e
