from __future__ import annotations
import asyncio
import logging
import time
from typing import Optional

from .capabilities import StudyAidCapability
from .errors import CapabilityUnavailable
from .ledger import ReputationLedger
from .pipeline import AdmissionDecision, AdmissionPipeline, UploadCandidate
from .schemas import CatalogEntry
from .storage.files import ObjectStorage, safe_filename

logger = logging.getLogger(__name__)


class NotePublisher:
	"""Verify and publish uploads.

	Publishing always runs the admission pipeline afresh so the duplicate
	check sees a fingerprint computed from the bytes being published, then
	generates the study aids, stores the file and commits the note with its
	ledger credit in one unit.
	"""

	def __init__(
		self,
		pipeline: AdmissionPipeline,
		ledger: ReputationLedger,
		files: ObjectStorage,
		aids: StudyAidCapability,
		*,
		aid_timeout: Optional[float] = None,
	) -> None:
		self.pipeline = pipeline
		self.ledger = ledger
		self.files = files
		self.aids = aids
		self.aid_timeout = aid_timeout

	async def verify(self, candidate: UploadCandidate) -> AdmissionDecision:
		return await self.pipeline.run(candidate)

	async def publish(self, candidate: UploadCandidate) -> CatalogEntry:
		decision = await self.pipeline.run(candidate)
		decision.raise_for_outcome()
		draft = decision.draft

		try:
			aids = await asyncio.wait_for(
				self.aids.generate_study_aids(candidate.gate_content(), candidate.is_image, mime_type=candidate.mime_type),
				self.aid_timeout,
			)
		except asyncio.TimeoutError as exc:
			raise CapabilityUnavailable("study_aids", "AI processing took too long. Please try again.") from exc

		# Nothing is written until the aids are in
		path = f"notes/{candidate.uploader_id}/{int(time.time() * 1000)}_{safe_filename(candidate.filename)}"
		file_url = await self.files.store(candidate.data, path)

		draft = draft.model_copy(
			update={
				"file_url": file_url,
				"summary": aids.summary,
				"flashcards": aids.flashcards,
				"quizzes": aids.quizzes,
				"processed_by": aids.processed_by,
			}
		)
		return await self.ledger.credit_publish(draft)
