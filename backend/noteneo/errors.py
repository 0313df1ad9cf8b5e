from __future__ import annotations
from typing import Any, Optional


class NoteNeoError(Exception):
	"""Base class for failures surfaced to the uploader or claimant.

	``retryable`` separates "try again" failures (provider outage, commit
	failure) from terminal rejections that need an edited resubmission.
	"""

	retryable: bool = False

	def __init__(self, reason: str) -> None:
		super().__init__(reason)
		self.reason = reason


class PolicyRejected(NoteNeoError):
	pass


class DuplicateRejected(NoteNeoError):
	def __init__(self, existing: Any, reason: Optional[str] = None) -> None:
		super().__init__(reason or "Piracy detected. This document matches an existing record in our library.")
		self.existing = existing


class CapabilityUnavailable(NoteNeoError):
	retryable = True

	def __init__(self, capability: str, reason: str) -> None:
		super().__init__(reason)
		self.capability = capability


class AtomicCommitFailure(NoteNeoError):
	retryable = True


class InvalidClaim(NoteNeoError):
	"""Benign no-op claim (self-claim, already infringing, unknown entry)."""


class EntryNotFound(NoteNeoError):
	pass
