"""Reputation points.

Points change only on publish (credit) and copyright takedown (debit). The
ledger computes the deltas; the catalog store applies them in the same
commit as the note write or status flip, so neither side is ever visible
without the other.
"""
from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Iterable, List, Sequence

from .schemas import CatalogEntry, NoteDraft, PointDelta, ProfileView, Standing

if TYPE_CHECKING:
	from .storage.base import CatalogStore

logger = logging.getLogger(__name__)

PUBLISH_BASE_POINTS = 10
QUALITY_BONUS_POINTS = 20
# Bonus applies strictly above this score
QUALITY_BONUS_THRESHOLD = 8
CONTRIBUTOR_POINTS = 5
TAKEDOWN_PENALTY = 50

# (exclusive upper bound, level, badge); the last tier is open-ended
LEVEL_TIERS: Sequence[tuple] = (
	(50, 1, "Novice"),
	(200, 2, "Contributor"),
	(500, 3, "Helper"),
)
TOP_LEVEL = (4, "Expert")


def standing_for(points: int) -> Standing:
	for upper, level, badge in LEVEL_TIERS:
		if points < upper:
			return Standing(level=level, badge=badge)
	return Standing(level=TOP_LEVEL[0], badge=TOP_LEVEL[1])


def profile_view(user_id: str, display_name: str, points: int, followers_count: int = 0, following_count: int = 0) -> ProfileView:
	standing = standing_for(points)
	return ProfileView(
		user_id=user_id,
		display_name=display_name,
		points=points,
		level=standing.level,
		badges=[standing.badge],
		followers_count=followers_count,
		following_count=following_count,
	)


def publish_credit(quality_score: int) -> int:
	bonus = QUALITY_BONUS_POINTS if quality_score > QUALITY_BONUS_THRESHOLD else 0
	return PUBLISH_BASE_POINTS + bonus


def publish_deltas(uploader_id: str, quality_score: int, contributor_ids: Iterable[str] = ()) -> List[PointDelta]:
	deltas = [PointDelta(user_id=uploader_id, delta=publish_credit(quality_score), reason="publish")]
	for uid in contributor_ids:
		if uid and uid != uploader_id:
			deltas.append(PointDelta(user_id=uid, delta=CONTRIBUTOR_POINTS, reason="publish_contributor"))
	return deltas


def takedown_delta(uploader_id: str) -> PointDelta:
	return PointDelta(user_id=uploader_id, delta=-TAKEDOWN_PENALTY, reason="takedown")


class ReputationLedger:
	def __init__(self, store: CatalogStore) -> None:
		self.store = store

	async def credit_publish(self, draft: NoteDraft) -> CatalogEntry:
		"""Persist ``draft`` and credit its uploader (and co-contributors) atomically."""
		deltas = publish_deltas(draft.uploader_id, draft.quality.score, draft.contributor_ids)
		entry = await self.store.commit_publish(draft, deltas)
		logger.info(
			"published %s (%s) by %s, credited %s",
			entry.id, entry.serial_code, entry.uploader_id,
			", ".join(f"{d.user_id}:{d.delta:+d}" for d in deltas),
		)
		return entry

	async def debit_takedown(self, entry: CatalogEntry) -> CatalogEntry:
		"""Mark ``entry`` infringing and debit its uploader atomically."""
		delta = takedown_delta(entry.uploader_id)
		updated = await self.store.commit_takedown(entry.id, delta)
		logger.info("takedown of %s, debited %s by %d", entry.id, entry.uploader_id, -delta.delta)
		return updated
