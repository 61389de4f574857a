from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from .entities import Blob, ScreenshotSet, make_set
from .errors import TransportError

log = logging.getLogger("shotsets.gateway")


class PersistenceGateway(Protocol):
    async def load(self, test_id: str) -> List[ScreenshotSet]: ...

    async def save(self, test_id: str, collection: Sequence[ScreenshotSet]) -> Dict[str, Any]: ...


def encode_collection(collection: Sequence[ScreenshotSet]) -> Tuple[List[Dict[str, Any]], List[Blob]]:
    """Put screenshot sets in the shape the save endpoint expects.

    Returns the ordered set descriptions plus the payloads they reference by
    ``uploadId``. Cells with neither an id nor new bytes are left out, and a
    set left with no cells is dropped entirely.
    """
    screenshots: List[Dict[str, Any]] = []
    blobs: List[Blob] = []
    for shot in collection:
        shot_data: Dict[str, Any] = {"name": shot.name, "files": {}}
        if shot.id:
            shot_data["id"] = shot.id
        for platform, image in shot.files.items():
            if not (image.id or image.pending_blob is not None):
                continue
            cell: Dict[str, Any] = {}
            if image.id:
                cell["id"] = image.id
            if image.pending_blob is not None:
                cell["uploadId"] = len(blobs)
                blobs.append(image.pending_blob)
            shot_data["files"][platform] = cell
        if shot_data["files"]:
            screenshots.append(shot_data)
    return screenshots, blobs


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("detail"):
        detail = body["detail"]
        return detail if isinstance(detail, str) else json.dumps(detail)
    return f"HTTP {resp.status_code}"


class HttpGateway:
    """Loads and saves screenshot sets against the HTTP backend."""

    def __init__(
        self,
        base_url: str,
        project_id: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout
        self._client = client

    def _url(self, test_id: str, action: str) -> str:
        return f"{self.base_url}/api/projects/{self.project_id}/tests/{test_id}/screenshots/{action}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as http:
                    resp = await http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, url, e)
            raise TransportError(str(e) or e.__class__.__name__) from e
        if resp.status_code >= 400:
            raise TransportError(_detail(resp))
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError("Invalid response from server") from e

    async def load(self, test_id: str) -> List[ScreenshotSet]:
        result = await self._send("GET", self._url(test_id, "load"))
        shots = result.get("screenshots") if isinstance(result, dict) else None
        if not isinstance(shots, list) or not all(isinstance(shot, dict) for shot in shots):
            raise TransportError("Invalid response from server")
        try:
            return [make_set(shot) for shot in shots]
        except (TypeError, ValueError, AttributeError) as e:
            raise TransportError("Invalid response from server") from e

    async def save(self, test_id: str, collection: Sequence[ScreenshotSet]) -> Dict[str, Any]:
        screenshots, blobs = encode_collection(collection)
        parts = []
        for blob in blobs:
            try:
                data = await blob.read()
            except OSError as e:
                raise TransportError(f"could not read {blob.name}: {e.strerror or e}") from e
            parts.append(("files[]", (blob.name, data, blob.content_type)))
        log.info("Saving %d screenshot sets (%d uploads) for test %s", len(screenshots), len(parts), test_id)
        return await self._send(
            "POST",
            self._url(test_id, "save"),
            data={"screenshots": json.dumps(screenshots)},
            files=parts,
        )
