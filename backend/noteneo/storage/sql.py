from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import AtomicCommitFailure, EntryNotFound, InvalidClaim
from ..ledger import profile_view
from ..models import Bookmark, Follow, Note, NoteContributor, PointLedgerRow, Profile
from ..schemas import CatalogEntry, CatalogStatus, LedgerRecord, NoteDraft, PointDelta, ProfileView
from .base import DEFAULT_DISPLAY_NAME, CatalogStore, generate_serial_code, new_entry_id

logger = logging.getLogger(__name__)

_INFRINGING = CatalogStatus.INFRINGING.value


def _to_entry(row: Note, contributor_ids: List[str]) -> CatalogEntry:
	return CatalogEntry(
		id=row.id,
		serial_code=row.serial_code,
		fingerprint=row.fingerprint,
		file_url=row.file_url,
		mime_type=row.mime_type,
		category=row.category,
		title=row.title,
		subject=row.subject,
		semester=row.semester,
		tags=row.tags or [],
		uploader_id=row.uploader_id,
		uploader_name=row.uploader_name,
		contributor_ids=contributor_ids,
		quality=row.quality or {"score": row.quality_score},
		summary=row.summary,
		flashcards=row.flashcards or [],
		quizzes=row.quizzes or [],
		processed_by=row.processed_by,
		status=CatalogStatus(row.status),
		uploaded_at=row.uploaded_at,
	)


class SqlCatalogStore(CatalogStore):
	"""SQLAlchemy-backed store; blocking session work runs in the threadpool."""

	def __init__(self, session_factory: sessionmaker) -> None:
		self._session_factory = session_factory

	# ---- helpers ----

	def _contributors(self, db: Session, note_ids: Sequence[str]) -> Dict[str, List[str]]:
		out: Dict[str, List[str]] = {nid: [] for nid in note_ids}
		if not note_ids:
			return out
		rows = db.execute(
			select(NoteContributor.note_id, NoteContributor.user_id)
			.where(NoteContributor.note_id.in_(note_ids))
			.order_by(NoteContributor.position)
		).all()
		for note_id, user_id in rows:
			out[note_id].append(user_id)
		return out

	def _entries(self, db: Session, rows: Sequence[Note]) -> List[CatalogEntry]:
		contributors = self._contributors(db, [r.id for r in rows])
		return [_to_entry(r, contributors[r.id]) for r in rows]

	def _apply_delta(self, db: Session, delta: PointDelta, note_id: str, display_name: Optional[str] = None) -> None:
		if db.get(Profile, delta.user_id) is None:
			db.add(Profile(user_id=delta.user_id, display_name=display_name or DEFAULT_DISPLAY_NAME, points=0))
			db.flush()
		db.execute(
			update(Profile)
			.where(Profile.user_id == delta.user_id)
			.values(points=Profile.points + delta.delta, updated_at=datetime.utcnow())
		)
		db.add(PointLedgerRow(user_id=delta.user_id, delta=delta.delta, reason=delta.reason, note_id=note_id))

	# ---- catalog ----

	def _get(self, entry_id: str) -> Optional[CatalogEntry]:
		with self._session_factory() as db:
			row = db.get(Note, entry_id)
			return self._entries(db, [row])[0] if row is not None else None

	async def get(self, entry_id: str) -> Optional[CatalogEntry]:
		return await run_in_threadpool(self._get, entry_id)

	def _list(self, limit: int, offset: int) -> List[CatalogEntry]:
		with self._session_factory() as db:
			rows = db.scalars(
				select(Note)
				.where(Note.status != _INFRINGING)
				.order_by(Note.uploaded_at.desc())
				.limit(limit)
				.offset(offset)
			).all()
			return self._entries(db, rows)

	async def list_entries(self, *, limit: int = 50, offset: int = 0) -> List[CatalogEntry]:
		return await run_in_threadpool(self._list, limit, offset)

	def _list_by_contributor(self, user_id: str) -> List[CatalogEntry]:
		with self._session_factory() as db:
			rows = db.scalars(
				select(Note)
				.join(NoteContributor, NoteContributor.note_id == Note.id)
				.where(NoteContributor.user_id == user_id, Note.status != _INFRINGING)
				.order_by(Note.uploaded_at.desc())
			).all()
			return self._entries(db, rows)

	async def list_by_contributor(self, user_id: str) -> List[CatalogEntry]:
		return await run_in_threadpool(self._list_by_contributor, user_id)

	def _find_by_fingerprint(self, fingerprint: str) -> Optional[CatalogEntry]:
		with self._session_factory() as db:
			row = db.scalars(
				select(Note)
				.where(Note.fingerprint == fingerprint, Note.status != _INFRINGING)
				.order_by(Note.uploaded_at)
				.limit(1)
			).first()
			return self._entries(db, [row])[0] if row is not None else None

	async def find_by_fingerprint(self, fingerprint: str) -> Optional[CatalogEntry]:
		return await run_in_threadpool(self._find_by_fingerprint, fingerprint)

	def _commit_publish(self, draft: NoteDraft, deltas: Sequence[PointDelta]) -> CatalogEntry:
		note_id = new_entry_id()
		try:
			with self._session_factory() as db, db.begin():
				row = Note(
					id=note_id,
					serial_code=generate_serial_code(),
					fingerprint=draft.fingerprint,
					file_url=draft.file_url,
					mime_type=draft.mime_type,
					category=draft.category,
					title=draft.title,
					subject=draft.subject,
					semester=draft.semester,
					tags=list(draft.tags),
					uploader_id=draft.uploader_id,
					uploader_name=draft.uploader_name,
					status=CatalogStatus.ORIGINAL.value,
					quality_score=draft.quality.score,
					quality=draft.quality.model_dump(mode="json"),
					summary=draft.summary.model_dump(mode="json") if draft.summary else None,
					flashcards=[c.model_dump(mode="json") for c in draft.flashcards],
					quizzes=[q.model_dump(mode="json") for q in draft.quizzes],
					processed_by=draft.processed_by,
					uploaded_at=datetime.utcnow(),
				)
				db.add(row)
				for position, uid in enumerate(draft.contributor_ids):
					db.add(NoteContributor(note_id=note_id, user_id=uid, position=position))
				db.flush()
				for delta in deltas:
					name = draft.uploader_name if delta.user_id == draft.uploader_id else None
					self._apply_delta(db, delta, note_id, name)
				db.flush()
				return _to_entry(row, list(draft.contributor_ids))
		except SQLAlchemyError as exc:
			logger.warning("publish commit for %s failed: %s", draft.uploader_id, exc)
			raise AtomicCommitFailure("Publishing failed. Please try again.") from exc

	async def commit_publish(self, draft: NoteDraft, deltas: Sequence[PointDelta]) -> CatalogEntry:
		return await run_in_threadpool(self._commit_publish, draft, deltas)

	def _commit_takedown(self, entry_id: str, delta: PointDelta) -> CatalogEntry:
		try:
			with self._session_factory() as db, db.begin():
				row = db.get(Note, entry_id)
				if row is None:
					raise EntryNotFound("note not found")
				# Conditional update: of two racing claims only one flips the row
				flipped = db.execute(
					update(Note)
					.where(Note.id == entry_id, Note.status != _INFRINGING)
					.values(status=_INFRINGING)
				).rowcount
				if not flipped:
					raise InvalidClaim("already_infringing")
				self._apply_delta(db, delta, entry_id)
				db.flush()
				db.refresh(row)
				return self._entries(db, [row])[0]
		except SQLAlchemyError as exc:
			logger.warning("takedown commit for %s failed: %s", entry_id, exc)
			raise AtomicCommitFailure("The claim could not be recorded. Please try again.") from exc

	async def commit_takedown(self, entry_id: str, delta: PointDelta) -> CatalogEntry:
		return await run_in_threadpool(self._commit_takedown, entry_id, delta)

	# ---- profiles ----

	def _view(self, row: Profile) -> ProfileView:
		return profile_view(row.user_id, row.display_name, row.points, row.followers_count, row.following_count)

	def _ensure_profile(self, user_id: str, display_name: Optional[str]) -> ProfileView:
		with self._session_factory() as db:
			row = db.get(Profile, user_id)
			if row is None:
				row = Profile(user_id=user_id, display_name=display_name or DEFAULT_DISPLAY_NAME, points=0)
				db.add(row)
				try:
					db.commit()
				except IntegrityError:
					# Created concurrently by another request
					db.rollback()
					row = db.get(Profile, user_id)
			return self._view(row)

	async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> ProfileView:
		return await run_in_threadpool(self._ensure_profile, user_id, display_name)

	def _get_profile(self, user_id: str) -> Optional[ProfileView]:
		with self._session_factory() as db:
			row = db.get(Profile, user_id)
			return self._view(row) if row is not None else None

	async def get_profile(self, user_id: str) -> Optional[ProfileView]:
		return await run_in_threadpool(self._get_profile, user_id)

	def _ledger_history(self, user_id: str) -> List[LedgerRecord]:
		with self._session_factory() as db:
			rows = db.scalars(
				select(PointLedgerRow).where(PointLedgerRow.user_id == user_id).order_by(PointLedgerRow.id)
			).all()
			return [
				LedgerRecord(user_id=r.user_id, delta=r.delta, reason=r.reason, note_id=r.note_id, created_at=r.created_at)
				for r in rows
			]

	async def ledger_history(self, user_id: str) -> List[LedgerRecord]:
		return await run_in_threadpool(self._ledger_history, user_id)

	# ---- social ----

	def _follow(self, follower_id: str, followee_id: str) -> bool:
		if follower_id == followee_id:
			return False
		with self._session_factory() as db, db.begin():
			if db.get(Follow, (follower_id, followee_id)) is not None:
				return False
			db.add(Follow(follower_id=follower_id, followee_id=followee_id))
			for uid in (follower_id, followee_id):
				if db.get(Profile, uid) is None:
					db.add(Profile(user_id=uid, display_name=DEFAULT_DISPLAY_NAME, points=0))
			db.flush()
			db.execute(update(Profile).where(Profile.user_id == follower_id).values(following_count=Profile.following_count + 1))
			db.execute(update(Profile).where(Profile.user_id == followee_id).values(followers_count=Profile.followers_count + 1))
			return True

	async def follow(self, follower_id: str, followee_id: str) -> bool:
		return await run_in_threadpool(self._follow, follower_id, followee_id)

	def _unfollow(self, follower_id: str, followee_id: str) -> bool:
		with self._session_factory() as db, db.begin():
			removed = db.execute(
				delete(Follow).where(Follow.follower_id == follower_id, Follow.followee_id == followee_id)
			).rowcount
			if not removed:
				return False
			db.execute(
				update(Profile)
				.where(Profile.user_id == follower_id)
				.values(following_count=Profile.following_count - 1)
			)
			db.execute(
				update(Profile)
				.where(Profile.user_id == followee_id)
				.values(followers_count=Profile.followers_count - 1)
			)
			return True

	async def unfollow(self, follower_id: str, followee_id: str) -> bool:
		return await run_in_threadpool(self._unfollow, follower_id, followee_id)

	def _following_ids(self, user_id: str) -> List[str]:
		with self._session_factory() as db:
			return list(db.scalars(select(Follow.followee_id).where(Follow.follower_id == user_id).order_by(Follow.followee_id)).all())

	async def following_ids(self, user_id: str) -> List[str]:
		return await run_in_threadpool(self._following_ids, user_id)

	def _set_bookmark(self, user_id: str, note_id: str, bookmarked: bool) -> None:
		with self._session_factory() as db, db.begin():
			existing = db.get(Bookmark, (user_id, note_id))
			if bookmarked and existing is None:
				db.add(Bookmark(user_id=user_id, note_id=note_id))
			elif not bookmarked and existing is not None:
				db.delete(existing)

	async def set_bookmark(self, user_id: str, note_id: str, bookmarked: bool) -> None:
		await run_in_threadpool(self._set_bookmark, user_id, note_id, bookmarked)

	def _bookmarks(self, user_id: str) -> List[str]:
		with self._session_factory() as db:
			return list(db.scalars(select(Bookmark.note_id).where(Bookmark.user_id == user_id).order_by(Bookmark.created_at)).all())

	async def bookmarks(self, user_id: str) -> List[str]:
		return await run_in_threadpool(self._bookmarks, user_id)
