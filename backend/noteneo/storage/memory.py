from __future__ import annotations
import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..errors import AtomicCommitFailure, EntryNotFound, InvalidClaim
from ..ledger import profile_view
from ..schemas import CatalogEntry, CatalogStatus, LedgerRecord, NoteDraft, PointDelta, ProfileView
from .base import DEFAULT_DISPLAY_NAME, CatalogStore, generate_serial_code, new_entry_id

logger = logging.getLogger(__name__)


@dataclass
class _ProfileRow:
	display_name: str
	points: int = 0


@dataclass
class _State:
	notes: Dict[str, CatalogEntry] = field(default_factory=dict)
	profiles: Dict[str, _ProfileRow] = field(default_factory=dict)
	ledger: List[LedgerRecord] = field(default_factory=list)


class MemoryCatalogStore(CatalogStore):
	"""In-process store for demo/offline mode and tests.

	Commits stage their changes on a copy of the state and swap it in only
	once every step succeeded.
	"""

	def __init__(self) -> None:
		self._state = _State()
		self._follows: Set[Tuple[str, str]] = set()
		self._bookmarks: Dict[str, List[str]] = {}
		self._lock = asyncio.Lock()

	# ---- catalog ----

	async def get(self, entry_id: str) -> Optional[CatalogEntry]:
		return self._state.notes.get(entry_id)

	def _visible(self) -> List[CatalogEntry]:
		notes = [n for n in self._state.notes.values() if n.status != CatalogStatus.INFRINGING]
		return sorted(notes, key=lambda n: n.uploaded_at, reverse=True)

	async def list_entries(self, *, limit: int = 50, offset: int = 0) -> List[CatalogEntry]:
		return self._visible()[offset : offset + limit]

	async def list_by_contributor(self, user_id: str) -> List[CatalogEntry]:
		return [n for n in self._visible() if user_id in n.contributor_ids]

	async def find_by_fingerprint(self, fingerprint: str) -> Optional[CatalogEntry]:
		for note in self._state.notes.values():
			if note.fingerprint == fingerprint and note.status != CatalogStatus.INFRINGING:
				return note
		return None

	def _apply_delta(self, state: _State, delta: PointDelta, note_id: str, display_name: Optional[str] = None) -> None:
		row = state.profiles.get(delta.user_id)
		if row is None:
			row = state.profiles[delta.user_id] = _ProfileRow(display_name=display_name or DEFAULT_DISPLAY_NAME)
		row.points += delta.delta
		state.ledger.append(LedgerRecord(**delta.model_dump(), note_id=note_id, created_at=datetime.utcnow()))

	async def commit_publish(self, draft: NoteDraft, deltas: Sequence[PointDelta]) -> CatalogEntry:
		async with self._lock:
			staged = copy.deepcopy(self._state)
			entry = CatalogEntry(
				**draft.model_dump(),
				id=new_entry_id(),
				serial_code=generate_serial_code(),
				status=CatalogStatus.ORIGINAL,
				uploaded_at=datetime.utcnow(),
			)
			try:
				staged.notes[entry.id] = entry
				for delta in deltas:
					name = draft.uploader_name if delta.user_id == draft.uploader_id else None
					self._apply_delta(staged, delta, entry.id, name)
			except Exception as exc:
				logger.warning("publish commit for %s failed: %s", draft.uploader_id, exc)
				raise AtomicCommitFailure("Publishing failed. Please try again.") from exc
			self._state = staged
			return entry

	async def commit_takedown(self, entry_id: str, delta: PointDelta) -> CatalogEntry:
		async with self._lock:
			current = self._state.notes.get(entry_id)
			if current is None:
				raise EntryNotFound("note not found")
			if current.status == CatalogStatus.INFRINGING:
				raise InvalidClaim("already_infringing")
			staged = copy.deepcopy(self._state)
			try:
				updated = current.model_copy(update={"status": CatalogStatus.INFRINGING})
				staged.notes[entry_id] = updated
				self._apply_delta(staged, delta, entry_id)
			except Exception as exc:
				logger.warning("takedown commit for %s failed: %s", entry_id, exc)
				raise AtomicCommitFailure("The claim could not be recorded. Please try again.") from exc
			self._state = staged
			return updated

	# ---- profiles ----

	def _view(self, user_id: str, row: _ProfileRow) -> ProfileView:
		followers = sum(1 for _, followee in self._follows if followee == user_id)
		following = sum(1 for follower, _ in self._follows if follower == user_id)
		return profile_view(user_id, row.display_name, row.points, followers, following)

	async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> ProfileView:
		async with self._lock:
			row = self._state.profiles.get(user_id)
			if row is None:
				row = self._state.profiles[user_id] = _ProfileRow(display_name=display_name or DEFAULT_DISPLAY_NAME)
			return self._view(user_id, row)

	async def get_profile(self, user_id: str) -> Optional[ProfileView]:
		row = self._state.profiles.get(user_id)
		return self._view(user_id, row) if row is not None else None

	async def ledger_history(self, user_id: str) -> List[LedgerRecord]:
		return [r for r in self._state.ledger if r.user_id == user_id]

	# ---- social ----

	async def follow(self, follower_id: str, followee_id: str) -> bool:
		key = (follower_id, followee_id)
		if follower_id == followee_id or key in self._follows:
			return False
		self._follows.add(key)
		return True

	async def unfollow(self, follower_id: str, followee_id: str) -> bool:
		key = (follower_id, followee_id)
		if key not in self._follows:
			return False
		self._follows.discard(key)
		return True

	async def following_ids(self, user_id: str) -> List[str]:
		return sorted(followee for follower, followee in self._follows if follower == user_id)

	async def set_bookmark(self, user_id: str, note_id: str, bookmarked: bool) -> None:
		marks = self._bookmarks.setdefault(user_id, [])
		if bookmarked and note_id not in marks:
			marks.append(note_id)
		elif not bookmarked and note_id in marks:
			marks.remove(note_id)

	async def bookmarks(self, user_id: str) -> List[str]:
		return list(self._bookmarks.get(user_id, []))
