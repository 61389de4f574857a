import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as BodyError

from .. import db
from ..entities import ACCEPTED_CONTENT_TYPE
from ..events import broadcast
from ..state import watch_key

log = logging.getLogger("shotsets.api")

router = APIRouter()

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class FileCell(BaseModel):
    id: Optional[str] = None
    uploadId: Optional[int] = None


class ShotBody(BaseModel):
    id: Optional[str] = None
    name: str = ""
    files: Dict[str, FileCell] = Field(default_factory=dict)


_shots = TypeAdapter(List[ShotBody])


def file_url(fid: str) -> str:
    return f"/api/screenshots/files/{fid}"


@router.get("/projects/{project_id}/tests/{test_id}/screenshots/load")
def load_screenshots(project_id: str, test_id: str) -> Dict[str, Any]:
    shots = db.get().load_sets(project_id, test_id)
    for shot in shots:
        for cell in shot["files"].values():
            cell["src"] = file_url(cell["id"])
    return {"screenshots": shots}


@router.post("/projects/{project_id}/tests/{test_id}/screenshots/save")
async def save_screenshots(project_id: str, test_id: str, request: Request) -> Dict[str, Any]:
    form = await request.form()
    raw = form.get("screenshots")
    if not isinstance(raw, str):
        raise HTTPException(status_code=422, detail="screenshots field missing")
    try:
        shots = _shots.validate_json(raw)
    except BodyError as e:
        raise HTTPException(status_code=422, detail=f"invalid screenshots: {e.error_count()} errors")

    payloads = []
    for upload in form.getlist("files[]"):
        if isinstance(upload, str):
            raise HTTPException(status_code=422, detail="files[] must be file uploads")
        content = await upload.read()
        if upload.content_type != ACCEPTED_CONTENT_TYPE or not content.startswith(PNG_SIGNATURE):
            raise HTTPException(status_code=422, detail=f"{upload.filename} is not a PNG file")
        payloads.append((content, ACCEPTED_CONTENT_TYPE))

    try:
        count = db.get().replace_sets(
            project_id, test_id, [s.model_dump(exclude_none=True) for s in shots], payloads
        )
    except db.SaveRejected as e:
        raise HTTPException(status_code=422, detail=str(e))
    log.info("Saved %d screenshot sets for %s/%s", count, project_id, test_id)
    broadcast(watch_key(project_id, test_id), "screenshots.saved", {"project": project_id, "test": test_id, "count": count})
    return {"saved": count}


@router.get("/screenshots/files/{fid}")
def get_file(fid: str) -> Response:
    rec = db.get().get_file(fid)
    if not rec:
        raise HTTPException(status_code=404, detail="not found")
    return Response(content=rec["content"], media_type=rec["content_type"], headers={"Cache-Control": "no-cache"})
