from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class CatalogStatus(str, Enum):
	ORIGINAL = "original"
	INFRINGING = "infringing"
	UNDER_REVIEW = "under_review"


def normalize_tags(tags: Iterable[str]) -> List[str]:
	clean = {str(t).strip().lower() for t in tags if str(t).strip()}
	return sorted(clean)


# ---- AI capability payloads ----

class PolicyVerdict(BaseModel):
	is_educational: bool
	violation_reason: Optional[str] = None
	suggested_tags: List[str] = Field(default_factory=list)

	@field_validator("suggested_tags", mode="before")
	@classmethod
	def _null_tags(cls, v):
		return [] if v is None else v

	@field_validator("suggested_tags")
	@classmethod
	def _clean_tags(cls, v: List[str]) -> List[str]:
		return normalize_tags(v)


class QualityAssessment(BaseModel):
	score: int = Field(ge=1, le=10)
	clarity: str = "High"
	completeness: str = "Full"
	relevance: str = "High"
	legibility: str = "Clear"

	# Models sometimes send null for the ratings they skip
	@field_validator("clarity", "completeness", "relevance", "legibility", mode="before")
	@classmethod
	def _default_when_null(cls, v, info):
		if v is None:
			return cls.model_fields[info.field_name].default
		return v


class NoteSummary(BaseModel):
	text: str
	key_points: List[str] = Field(default_factory=list)
	length: Literal["short", "medium", "long"] = "medium"
	generated_at: datetime = Field(default_factory=datetime.utcnow)


class Flashcard(BaseModel):
	q: str
	a: str


class QuizQuestion(BaseModel):
	id: str
	question: str
	choices: List[str] = Field(min_length=2)
	answer_index: int = Field(ge=0)
	explanation: str = ""

	@field_validator("answer_index")
	@classmethod
	def _answer_in_range(cls, v: int, info) -> int:
		choices = info.data.get("choices") or []
		if choices and v >= len(choices):
			raise ValueError("answer_index out of range")
		return v


class Quiz(BaseModel):
	id: str
	title: str
	questions: List[QuizQuestion] = Field(default_factory=list)


class StudyAids(BaseModel):
	summary: Optional[NoteSummary] = None
	flashcards: List[Flashcard] = Field(default_factory=list)
	quizzes: List[Quiz] = Field(default_factory=list)
	processed_by: Optional[str] = None


# ---- Catalog ----

class NoteDraft(BaseModel):
	"""An admitted note that has not been persisted yet."""

	fingerprint: str
	file_url: str = ""
	mime_type: str
	category: Literal["image", "document"]
	title: str
	subject: str
	semester: str = "N/A"
	tags: List[str] = Field(default_factory=list)
	uploader_id: str
	uploader_name: str
	contributor_ids: List[str] = Field(default_factory=list, validate_default=True)
	quality: QualityAssessment
	summary: Optional[NoteSummary] = None
	flashcards: List[Flashcard] = Field(default_factory=list)
	quizzes: List[Quiz] = Field(default_factory=list)
	processed_by: Optional[str] = None

	@field_validator("tags")
	@classmethod
	def _clean_tags(cls, v: List[str]) -> List[str]:
		return normalize_tags(v)

	@field_validator("contributor_ids")
	@classmethod
	def _uploader_first(cls, v: List[str], info) -> List[str]:
		uploader = info.data.get("uploader_id")
		ordered: List[str] = [uploader] if uploader else []
		for uid in v:
			if uid and uid not in ordered:
				ordered.append(uid)
		return ordered


class CatalogEntry(NoteDraft):
	id: str
	serial_code: str
	status: CatalogStatus = CatalogStatus.ORIGINAL
	uploaded_at: datetime

	@property
	def quality_score(self) -> int:
		return self.quality.score


# ---- Reputation ----

class PointDelta(BaseModel):
	user_id: str
	delta: int
	reason: Literal["publish", "publish_contributor", "takedown"]


class LedgerRecord(PointDelta):
	note_id: Optional[str] = None
	created_at: datetime


class Standing(BaseModel):
	level: int
	badge: str


class ProfileView(BaseModel):
	user_id: str
	display_name: str
	points: int
	level: int
	badges: List[str]
	followers_count: int = 0
	following_count: int = 0


class ClaimResult(BaseModel):
	ok: bool
	reason: Optional[str] = None
	entry_id: Optional[str] = None
