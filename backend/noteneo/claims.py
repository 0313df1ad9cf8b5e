from __future__ import annotations
import logging

from .errors import EntryNotFound, InvalidClaim
from .ledger import ReputationLedger
from .schemas import CatalogStatus, ClaimResult
from .storage.base import CatalogStore

logger = logging.getLogger(__name__)


class CopyrightClaimResolver:
	"""Takes a note down on a copyright claim and penalizes its uploader.

	Self-claims, repeat claims and unknown notes are benign no-ops reported
	through ``ClaimResult.reason``. The status flip and the debit commit
	together; ``AtomicCommitFailure`` propagates with neither applied.
	"""

	def __init__(self, store: CatalogStore, ledger: ReputationLedger) -> None:
		self.store = store
		self.ledger = ledger

	async def claim(self, entry_id: str, claimant_id: str) -> ClaimResult:
		entry = await self.store.get(entry_id)
		if entry is None:
			return ClaimResult(ok=False, reason="not_found", entry_id=entry_id)
		if entry.uploader_id == claimant_id:
			logger.info("ignored self-claim on %s by %s", entry_id, claimant_id)
			return ClaimResult(ok=False, reason="self_claim", entry_id=entry_id)
		if entry.status == CatalogStatus.INFRINGING:
			return ClaimResult(ok=False, reason="already_infringing", entry_id=entry_id)
		try:
			await self.ledger.debit_takedown(entry)
		except InvalidClaim as exc:
			# Lost a race with a concurrent claim on the same note
			return ClaimResult(ok=False, reason=exc.reason, entry_id=entry_id)
		except EntryNotFound:
			return ClaimResult(ok=False, reason="not_found", entry_id=entry_id)
		logger.info("copyright claim on %s by %s accepted", entry_id, claimant_id)
		return ClaimResult(ok=True, entry_id=entry_id)
