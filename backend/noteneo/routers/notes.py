from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel

from ..errors import DuplicateRejected, EntryNotFound, NoteNeoError
from ..pipeline import AdmissionDecision, UploadCandidate
from ..schemas import CatalogEntry, ClaimResult
from ..services import Services, get_services
from ..settings import settings
from .auth import User, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes", tags=["notes"])


class DuplicateRef(BaseModel):
	id: str
	serial_code: str
	title: str
	uploader_name: str


class VerifyResponse(BaseModel):
	outcome: str
	stage: str
	retryable: bool
	reason: Optional[str] = None
	fingerprint: Optional[str] = None
	quality_score: Optional[int] = None
	suggested_tags: List[str] = []
	duplicate_of: Optional[DuplicateRef] = None


def _split(value: Optional[str]) -> List[str]:
	return [part.strip() for part in (value or "").split(",") if part.strip()]


def _duplicate_ref(entry: Optional[CatalogEntry]) -> Optional[DuplicateRef]:
	if entry is None:
		return None
	return DuplicateRef(id=entry.id, serial_code=entry.serial_code, title=entry.title, uploader_name=entry.uploader_name)


def _http_error(exc: NoteNeoError) -> HTTPException:
	if isinstance(exc, DuplicateRejected):
		return HTTPException(
			status_code=409,
			detail={"reason": exc.reason, "retryable": False, "duplicate_of": _duplicate_ref(exc.existing).model_dump()},
		)
	if isinstance(exc, EntryNotFound):
		return HTTPException(status_code=404, detail={"reason": exc.reason, "retryable": False})
	status = 503 if exc.retryable else 422
	return HTTPException(status_code=status, detail={"reason": exc.reason, "retryable": exc.retryable})


async def _candidate(
	file: UploadFile,
	title: str,
	subject: str,
	tags: Optional[str],
	contributors: Optional[str],
	semester: Optional[str],
	user: User,
	services: Services,
) -> UploadCandidate:
	title = (title or "").strip()
	subject = (subject or "").strip()
	if not title or not subject:
		raise HTTPException(status_code=400, detail="title and subject are required")
	# One byte past the limit is enough to tell the upload is too large
	data = await file.read(settings.max_upload_bytes + 1)
	if not data:
		raise HTTPException(status_code=400, detail="file is empty")
	if len(data) > settings.max_upload_bytes:
		raise HTTPException(status_code=413, detail=f"file exceeds {settings.max_upload_bytes} bytes")
	profile = await services.store.ensure_profile(user.username)
	return UploadCandidate(
		data=data,
		filename=file.filename or "upload",
		mime_type=file.content_type or "application/octet-stream",
		title=title,
		subject=subject,
		uploader_id=user.username,
		uploader_name=profile.display_name,
		tags=_split(tags),
		contributor_ids=_split(contributors),
		semester=(semester or "").strip() or "N/A",
	)


def _verify_response(decision: AdmissionDecision) -> VerifyResponse:
	return VerifyResponse(
		outcome=decision.outcome.value,
		stage=decision.stage.value,
		retryable=decision.retryable,
		reason=decision.reason,
		fingerprint=decision.fingerprint,
		quality_score=decision.quality.score if decision.quality else None,
		suggested_tags=decision.verdict.suggested_tags if decision.verdict and decision.admitted else [],
		duplicate_of=_duplicate_ref(decision.duplicate_of),
	)


@router.post("/verify", response_model=VerifyResponse)
async def verify_note(
	file: UploadFile = File(...),
	title: str = Form(...),
	subject: str = Form(...),
	tags: Optional[str] = Form(None),
	contributors: Optional[str] = Form(None),
	semester: Optional[str] = Form(None),
	user: User = Depends(get_current_user),
	services: Services = Depends(get_services),
):
	candidate = await _candidate(file, title, subject, tags, contributors, semester, user, services)
	decision = await services.publisher.verify(candidate)
	return _verify_response(decision)


@router.post("", response_model=CatalogEntry, status_code=201)
async def publish_note(
	file: UploadFile = File(...),
	title: str = Form(...),
	subject: str = Form(...),
	tags: Optional[str] = Form(None),
	contributors: Optional[str] = Form(None),
	semester: Optional[str] = Form(None),
	user: User = Depends(get_current_user),
	services: Services = Depends(get_services),
):
	candidate = await _candidate(file, title, subject, tags, contributors, semester, user, services)
	try:
		return await services.publisher.publish(candidate)
	except NoteNeoError as exc:
		raise _http_error(exc)


@router.get("", response_model=List[CatalogEntry])
async def list_notes(
	limit: int = Query(default=50, ge=1, le=200),
	offset: int = Query(default=0, ge=0),
	services: Services = Depends(get_services),
):
	return await services.store.list_entries(limit=limit, offset=offset)


@router.get("/by-user/{user_id}", response_model=List[CatalogEntry])
async def list_user_notes(user_id: str, services: Services = Depends(get_services)):
	return await services.store.list_by_contributor(user_id)


@router.get("/{note_id}", response_model=CatalogEntry)
async def get_note(note_id: str, services: Services = Depends(get_services)):
	entry = await services.store.get(note_id)
	if entry is None:
		raise HTTPException(status_code=404, detail="note not found")
	return entry


@router.post("/{note_id}/claim", response_model=ClaimResult)
async def claim_copyright(
	note_id: str,
	user: User = Depends(get_current_user),
	services: Services = Depends(get_services),
):
	try:
		result = await services.claims.claim(note_id, user.username)
	except NoteNeoError as exc:
		raise _http_error(exc)
	if result.reason == "not_found":
		raise HTTPException(status_code=404, detail="note not found")
	return result


@router.post("/{note_id}/bookmark", status_code=204)
async def add_bookmark(note_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	if await services.store.get(note_id) is None:
		raise HTTPException(status_code=404, detail="note not found")
	await services.store.set_bookmark(user.username, note_id, True)


@router.delete("/{note_id}/bookmark", status_code=204)
async def remove_bookmark(note_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	await services.store.set_bookmark(user.username, note_id, False)
