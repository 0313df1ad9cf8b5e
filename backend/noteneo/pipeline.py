"""Upload admission.

A candidate upload passes through a fixed sequence of gates::

	fingerprinting -> policy_audit -> quality_scoring -> duplicate_check -> admitted

Each gate completes before the next starts and the first failure ends the
run. A gate that cannot answer (provider error, unreadable reply, timeout)
*blocks* the run as retryable; it never lets the upload through. Nothing is
persisted here: an admitted run yields a :class:`NoteDraft` for the caller
to commit together with the ledger credit.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, List, Optional, Sequence, Union

from .capabilities import ClassificationCapability, QualityCapability
from .errors import CapabilityUnavailable, DuplicateRejected, NoteNeoError, PolicyRejected
from .fingerprint import fingerprint_upload, is_image, upload_content
from .schemas import CatalogEntry, NoteDraft, PolicyVerdict, QualityAssessment
from .storage.base import CatalogStore

logger = logging.getLogger(__name__)

BUSY_REASON = "The verification server is busy. Please try again."


class AdmissionStage(str, Enum):
	IDLE = "idle"
	FINGERPRINTING = "fingerprinting"
	POLICY_AUDIT = "policy_audit"
	QUALITY_SCORING = "quality_scoring"
	DUPLICATE_CHECK = "duplicate_check"
	ADMITTED = "admitted"


class AdmissionOutcome(str, Enum):
	ADMITTED = "admitted"
	REJECTED = "rejected"
	BLOCKED = "blocked"


@dataclass(frozen=True)
class UploadCandidate:
	data: bytes
	filename: str
	mime_type: str
	title: str
	subject: str
	uploader_id: str
	uploader_name: str = "Scholar"
	tags: Sequence[str] = ()
	contributor_ids: Sequence[str] = ()
	semester: str = "N/A"

	@property
	def is_image(self) -> bool:
		return is_image(self.mime_type)

	def gate_content(self) -> Union[bytes, str]:
		return upload_content(self.data, self.mime_type, self.title, self.filename)

	def fingerprint(self) -> str:
		return fingerprint_upload(self.data, self.mime_type, self.title, self.filename)


@dataclass
class AdmissionDecision:
	outcome: AdmissionOutcome
	stage: AdmissionStage
	trail: List[AdmissionStage] = field(default_factory=list)
	fingerprint: Optional[str] = None
	reason: Optional[str] = None
	verdict: Optional[PolicyVerdict] = None
	quality: Optional[QualityAssessment] = None
	duplicate_of: Optional[CatalogEntry] = None
	draft: Optional[NoteDraft] = None

	@property
	def admitted(self) -> bool:
		return self.outcome == AdmissionOutcome.ADMITTED

	@property
	def retryable(self) -> bool:
		return self.outcome == AdmissionOutcome.BLOCKED

	def as_error(self) -> Optional[NoteNeoError]:
		if self.outcome == AdmissionOutcome.BLOCKED:
			return CapabilityUnavailable(self.stage.value, self.reason or BUSY_REASON)
		if self.duplicate_of is not None:
			return DuplicateRejected(self.duplicate_of)
		if self.outcome == AdmissionOutcome.REJECTED:
			return PolicyRejected(self.reason or "This upload does not look like study material.")
		return None

	def raise_for_outcome(self) -> None:
		error = self.as_error()
		if error is not None:
			raise error


class DuplicateRegistry:
	"""Fingerprint lookup over the catalog, ignoring infringing entries."""

	def __init__(self, store: CatalogStore) -> None:
		self.store = store

	async def find_by_fingerprint(self, fp: str) -> Optional[CatalogEntry]:
		return await self.store.find_by_fingerprint(fp)


class _Blocked(Exception):
	def __init__(self, reason: str) -> None:
		super().__init__(reason)
		self.reason = reason


class AdmissionPipeline:
	def __init__(
		self,
		classifier: ClassificationCapability,
		scorer: QualityCapability,
		registry: DuplicateRegistry,
		*,
		gate_timeout: Optional[float] = None,
	) -> None:
		self.classifier = classifier
		self.scorer = scorer
		self.registry = registry
		self.gate_timeout = gate_timeout

	async def _call(self, stage: AdmissionStage, call: Awaitable[Any], timeout: Optional[float]) -> Any:
		try:
			if timeout is None:
				return await call
			return await asyncio.wait_for(call, timeout)
		except asyncio.TimeoutError:
			logger.warning("%s timed out after %ss", stage.value, timeout)
			raise _Blocked("The verification server took too long to answer. Please try again.")
		except CapabilityUnavailable as exc:
			logger.warning("%s unavailable: %s", stage.value, exc.reason)
			raise _Blocked(exc.reason)
		except NoteNeoError:
			raise
		except Exception as exc:
			logger.warning("%s failed: %r", stage.value, exc)
			raise _Blocked(BUSY_REASON)

	async def run(self, candidate: UploadCandidate, *, timeout: Optional[float] = None) -> AdmissionDecision:
		timeout = self.gate_timeout if timeout is None else timeout
		trail: List[AdmissionStage] = [AdmissionStage.IDLE]
		stage = AdmissionStage.IDLE

		def enter(next_stage: AdmissionStage) -> AdmissionStage:
			trail.append(next_stage)
			return next_stage

		def ended(outcome: AdmissionOutcome, **kwargs: Any) -> AdmissionDecision:
			decision = AdmissionDecision(outcome=outcome, stage=stage, trail=list(trail), **kwargs)
			logger.info(
				"admission of %r by %s: %s at %s%s",
				candidate.filename, candidate.uploader_id, outcome.value, stage.value,
				f" ({decision.reason})" if decision.reason else "",
			)
			return decision

		stage = enter(AdmissionStage.FINGERPRINTING)
		content = candidate.gate_content()
		fp = candidate.fingerprint()

		verdict: Optional[PolicyVerdict] = None
		quality: Optional[QualityAssessment] = None
		try:
			stage = enter(AdmissionStage.POLICY_AUDIT)
			verdict = await self._call(
				stage,
				self.classifier.classify(content, candidate.is_image, mime_type=candidate.mime_type),
				timeout,
			)
			if not verdict.is_educational:
				return ended(
					AdmissionOutcome.REJECTED,
					fingerprint=fp,
					verdict=verdict,
					reason=verdict.violation_reason or "This upload does not look like study material.",
				)

			stage = enter(AdmissionStage.QUALITY_SCORING)
			quality = await self._call(
				stage,
				self.scorer.assess_quality(
					content, candidate.is_image, candidate.title, candidate.subject, mime_type=candidate.mime_type
				),
				timeout,
			)

			stage = enter(AdmissionStage.DUPLICATE_CHECK)
			existing = await self._call(stage, self.registry.find_by_fingerprint(fp), None)
		except _Blocked as blocked:
			return ended(AdmissionOutcome.BLOCKED, fingerprint=fp, verdict=verdict, quality=quality, reason=blocked.reason)

		if existing is not None:
			return ended(
				AdmissionOutcome.REJECTED,
				fingerprint=fp,
				verdict=verdict,
				quality=quality,
				duplicate_of=existing,
				reason="Piracy detected. This document matches an existing record in our library.",
			)

		stage = enter(AdmissionStage.ADMITTED)
		draft = NoteDraft(
			fingerprint=fp,
			mime_type=candidate.mime_type,
			category="image" if candidate.is_image else "document",
			title=candidate.title,
			subject=candidate.subject,
			semester=candidate.semester,
			tags=list(candidate.tags),
			uploader_id=candidate.uploader_id,
			uploader_name=candidate.uploader_name,
			contributor_ids=list(candidate.contributor_ids),
			quality=quality,
		)
		return ended(AdmissionOutcome.ADMITTED, fingerprint=fp, verdict=verdict, quality=quality, draft=draft)
