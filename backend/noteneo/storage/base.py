from __future__ import annotations
import secrets
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..schemas import CatalogEntry, LedgerRecord, NoteDraft, PointDelta, ProfileView

# No 0/O or 1/I
SERIAL_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SERIAL_PREFIX = "NN-"
SERIAL_LENGTH = 6

DEFAULT_DISPLAY_NAME = "Scholar"


def generate_serial_code() -> str:
	return SERIAL_PREFIX + "".join(secrets.choice(SERIAL_ALPHABET) for _ in range(SERIAL_LENGTH))


def new_entry_id() -> str:
	return uuid.uuid4().hex


class CatalogStore(ABC):
	"""Catalog, profile and social storage.

	``commit_publish`` and ``commit_takedown`` are the only writers of point
	balances; each applies its catalog mutation and its ledger deltas as one
	unit or raises :class:`~noteneo.errors.AtomicCommitFailure` with nothing
	applied. Listings and fingerprint lookups never return infringing entries.
	"""

	# ---- catalog ----

	@abstractmethod
	async def get(self, entry_id: str) -> Optional[CatalogEntry]: ...

	@abstractmethod
	async def list_entries(self, *, limit: int = 50, offset: int = 0) -> List[CatalogEntry]: ...

	@abstractmethod
	async def list_by_contributor(self, user_id: str) -> List[CatalogEntry]: ...

	@abstractmethod
	async def find_by_fingerprint(self, fingerprint: str) -> Optional[CatalogEntry]: ...

	@abstractmethod
	async def commit_publish(self, draft: NoteDraft, deltas: Sequence[PointDelta]) -> CatalogEntry: ...

	@abstractmethod
	async def commit_takedown(self, entry_id: str, delta: PointDelta) -> CatalogEntry:
		"""Flip ``entry_id`` to infringing and apply ``delta``.

		Raises ``EntryNotFound`` for an unknown id and ``InvalidClaim`` when the
		entry is already infringing, so concurrent claims debit only once.
		"""

	# ---- profiles ----

	@abstractmethod
	async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> ProfileView: ...

	@abstractmethod
	async def get_profile(self, user_id: str) -> Optional[ProfileView]: ...

	@abstractmethod
	async def ledger_history(self, user_id: str) -> List[LedgerRecord]: ...

	# ---- social ----

	@abstractmethod
	async def follow(self, follower_id: str, followee_id: str) -> bool: ...

	@abstractmethod
	async def unfollow(self, follower_id: str, followee_id: str) -> bool: ...

	@abstractmethod
	async def following_ids(self, user_id: str) -> List[str]: ...

	@abstractmethod
	async def set_bookmark(self, user_id: str, note_id: str, bookmarked: bool) -> None: ...

	@abstractmethod
	async def bookmarks(self, user_id: str) -> List[str]: ...

	async def close(self) -> None:
		return None
