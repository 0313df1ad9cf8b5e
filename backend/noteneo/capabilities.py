"""AI capabilities consumed by the admission pipeline and the publisher.

Every model response is validated against a pydantic schema and comes back
as a :class:`ParseResult`. The gating capabilities turn a parse failure into
:class:`CapabilityUnavailable` so nothing is ever approved by default; the
study-aid capability falls back to explicit empty artifacts instead.
"""
from __future__ import annotations
import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Protocol, TypeVar, Union

import httpx
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import CapabilityUnavailable
from .gemini_client import GeminiClient
from .schemas import Flashcard, NoteSummary, PolicyVerdict, QualityAssessment, Quiz, QuizQuestion, StudyAids

logger = logging.getLogger(__name__)

T = TypeVar("T")

Content = Union[bytes, str]

# Text content is truncated before it goes into a prompt
MAX_PROMPT_CHARS = 12000


@dataclass(frozen=True)
class ParseResult(Generic[T]):
	value: Optional[T] = None
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	def or_fallback(self, fallback: T) -> T:
		return self.value if self.ok else fallback


def extract_json(text: str) -> Any:
	try:
		return json.loads(text)
	except (TypeError, ValueError):
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text or "")
	if code_block:
		try:
			return json.loads(code_block.group(1))
		except ValueError:
			pass
	text = text or ""
	# Try whichever container opens first: an array of objects also contains "{"
	spans = []
	for opener, closer in (("{", "}"), ("[", "]")):
		first, last = text.find(opener), text.rfind(closer)
		if first != -1 and last > first:
			spans.append((first, last))
	for first, last in sorted(spans):
		try:
			return json.loads(text[first : last + 1])
		except ValueError:
			continue
	raise ValueError("model output is not JSON")


def parse_model_output(raw: str, schema: Any) -> ParseResult:
	try:
		data = extract_json(raw)
		return ParseResult(value=TypeAdapter(schema).validate_python(data))
	except (ValueError, ValidationError) as exc:
		return ParseResult(error=str(exc))


class ClassificationCapability(Protocol):
	async def classify(self, content: Content, is_image: bool, *, mime_type: str = "image/jpeg") -> PolicyVerdict: ...


class QualityCapability(Protocol):
	async def assess_quality(
		self, content: Content, is_image: bool, title: str, subject: str, *, mime_type: str = "image/jpeg"
	) -> QualityAssessment: ...


class StudyAidCapability(Protocol):
	async def generate_study_aids(self, content: Content, is_image: bool, *, mime_type: str = "image/jpeg") -> StudyAids: ...


# ---- raw response shapes requested from the model ----

class _SummaryOut(BaseModel):
	summary: str
	key_points: List[str] = Field(default_factory=list)


class _QuizQuestionOut(BaseModel):
	question: str
	choices: List[str] = Field(min_length=2)
	answer_index: int = Field(ge=0)
	explanation: str = ""


class _QuizOut(BaseModel):
	title: str = "Practice quiz"
	questions: List[_QuizQuestionOut] = Field(default_factory=list)


def _audit_prompt(is_image: bool, text: str) -> str:
	source = "the attached image" if is_image else f"this upload description:\n{text}"
	return (
		"You are the content-policy auditor of a student note-sharing library.\n"
		f"Decide whether {source} is legitimate educational study material "
		"(lecture notes, handwritten notes, solved problems, study guides).\n"
		"Reject memes, selfies, advertisements, exam leaks and unrelated content.\n\n"
		"Return ONLY a JSON object with keys: is_educational (boolean), "
		"violation_reason (string or null, one short sentence when rejected), "
		"suggested_tags (array of up to 5 short lowercase topic tags)."
	)


def _quality_prompt(is_image: bool, text: str, title: str, subject: str) -> str:
	source = "the attached image" if is_image else f"this upload description:\n{text}"
	return (
		"You are reviewing study notes before they are published to a student library.\n"
		f"Title: {title}\nSubject: {subject}\n"
		f"Evaluate {source} for clarity, completeness, relevance to the subject and legibility.\n\n"
		"Return ONLY a JSON object with keys: score (integer 1-10), clarity, completeness, "
		"relevance, legibility (each a one or two word rating)."
	)


_SUMMARY_PROMPT = (
	"Summarize the following study notes clearly and list 5-8 key points.\n"
	"Return ONLY a JSON object with keys: summary (string), key_points (array of strings)."
)
_FLASHCARD_PROMPT = (
	"Create 5-10 flashcards from the study notes.\n"
	'Return ONLY a JSON array of objects with keys "q" (question) and "a" (answer).'
)
_QUIZ_PROMPT = (
	"Create a short multiple-choice quiz (3-5 questions) from the study notes.\n"
	"Return ONLY a JSON object with keys: title (string), questions (array of objects with "
	"question, choices (exactly 4 strings), answer_index (0-3), explanation)."
)


def _summary_length(text: str) -> str:
	words = len(text.split())
	if words < 80:
		return "short"
	if words < 250:
		return "medium"
	return "long"


class GeminiCapabilities:
	"""Classification, quality and study-aid capabilities backed by Gemini."""

	def __init__(
		self,
		*,
		client_factory: Optional[Callable[..., GeminiClient]] = None,
		gate_model: Optional[str] = None,
		aid_model: Optional[str] = None,
	) -> None:
		self._client_factory = client_factory or GeminiClient
		self.gate_model = gate_model
		self.aid_model = aid_model

	async def _ask(self, model: Optional[str], prompt: str, content: Content, is_image: bool, mime_type: str) -> str:
		async with self._client_factory(model=model) as client:
			if is_image:
				data = content if isinstance(content, bytes) else content.encode("utf-8")
				return await client.generate_with_image(prompt, data, mime_type, json_output=True)
			return await client.generate(prompt, json_output=True)

	async def _gate(self, capability: str, prompt: str, schema: Any, content: Content, is_image: bool, mime_type: str):
		try:
			raw = await self._ask(self.gate_model, prompt, content, is_image, mime_type)
		except (httpx.HTTPError, RuntimeError, ValueError) as exc:
			raise CapabilityUnavailable(capability, "The verification server is busy. Please try again.") from exc
		result = parse_model_output(raw, schema)
		if not result.ok:
			logger.warning("%s returned an unusable response: %s", capability, result.error)
			raise CapabilityUnavailable(capability, "The verification server returned an unreadable answer. Please try again.")
		return result.value

	async def classify(self, content: Content, is_image: bool, *, mime_type: str = "image/jpeg") -> PolicyVerdict:
		text = "" if is_image else str(content)[:MAX_PROMPT_CHARS]
		return await self._gate("classification", _audit_prompt(is_image, text), PolicyVerdict, content, is_image, mime_type)

	async def assess_quality(
		self, content: Content, is_image: bool, title: str, subject: str, *, mime_type: str = "image/jpeg"
	) -> QualityAssessment:
		text = "" if is_image else str(content)[:MAX_PROMPT_CHARS]
		prompt = _quality_prompt(is_image, text, title, subject)
		return await self._gate("quality", prompt, QualityAssessment, content, is_image, mime_type)

	async def _aid(self, instruction: str, content: Content, is_image: bool, mime_type: str) -> str:
		prompt = instruction if is_image else f"{instruction}\n\nNOTES:\n{str(content)[:MAX_PROMPT_CHARS]}"
		try:
			return await self._ask(self.aid_model, prompt, content, is_image, mime_type)
		except (httpx.HTTPError, RuntimeError, ValueError) as exc:
			raise CapabilityUnavailable("study_aids", "AI processing is unavailable right now. Please try again.") from exc

	async def generate_study_aids(self, content: Content, is_image: bool, *, mime_type: str = "image/jpeg") -> StudyAids:
		raw_summary, raw_cards, raw_quiz = await asyncio.gather(
			self._aid(_SUMMARY_PROMPT, content, is_image, mime_type),
			self._aid(_FLASHCARD_PROMPT, content, is_image, mime_type),
			self._aid(_QUIZ_PROMPT, content, is_image, mime_type),
		)
		return build_study_aids(raw_summary, raw_cards, raw_quiz, processed_by=self.aid_model)


def build_study_aids(raw_summary: str, raw_cards: str, raw_quiz: str, *, processed_by: Optional[str] = None) -> StudyAids:
	summary_result = parse_model_output(raw_summary, _SummaryOut)
	if summary_result.ok:
		out = summary_result.value
		summary = NoteSummary(text=out.summary, key_points=out.key_points, length=_summary_length(out.summary))
	else:
		logger.info("summary response not JSON, keeping raw text: %s", summary_result.error)
		summary = NoteSummary(text=raw_summary.strip(), key_points=[], length=_summary_length(raw_summary))

	flashcards: List[Flashcard] = parse_model_output(raw_cards, List[Flashcard]).or_fallback([])

	quizzes: List[Quiz] = []
	quiz_result = parse_model_output(raw_quiz, _QuizOut)
	if quiz_result.ok and quiz_result.value.questions:
		questions: List[QuizQuestion] = []
		for q in quiz_result.value.questions:
			if q.answer_index >= len(q.choices):
				continue
			questions.append(QuizQuestion(id=uuid.uuid4().hex, **q.model_dump()))
		if questions:
			quizzes.append(Quiz(id=uuid.uuid4().hex, title=quiz_result.value.title, questions=questions))
	return StudyAids(summary=summary, flashcards=flashcards, quizzes=quizzes, processed_by=processed_by)
