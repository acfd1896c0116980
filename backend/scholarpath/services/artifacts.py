from __future__ import annotations
import json
import logging
import re
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..errors import MalformedProviderOutput
from ..gemini_client import ContentProvider
from ..prompts import build_learner_note_prompt, build_quiz_prompt, build_teacher_note_prompt
from ..schemas import (
	ArtifactKind,
	GenerationContext,
	OptionDraft,
	ParsedArtifact,
	ParsedQuiz,
	ProviderQuiz,
	QuestionDraft,
)

logger = logging.getLogger(__name__)

AUTO_SECTION = "Section A"
MANUAL_SECTION = "Section B"

_TYPE_ALIASES = {
	"MCQ": "MCQ",
	"MULTIPLE_CHOICE": "MCQ",
	"TRUE_FALSE": "TRUE_FALSE",
	"TRUEFALSE": "TRUE_FALSE",
	"SHORT_ANSWER": "SHORT_ANSWER",
	"SHORTANSWER": "SHORT_ANSWER",
	"ESSAY": "ESSAY",
	"THEORY": "ESSAY",
	"FILL_IN_THE_BLANK": "FILL_IN_THE_BLANK",
	"FILLINTHEBLANK": "FILL_IN_THE_BLANK",
}


def extract_json(text: str) -> Any:
	"""Pull a JSON value out of model output: bare, fenced, or embedded in prose."""
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
	for open_ch, close_ch in (("{", "}"), ("[", "]")):
		first = text.find(open_ch)
		last = text.rfind(close_ch)
		if first != -1 and last > first:
			try:
				return json.loads(text[first : last + 1])
			except ValueError:
				continue
	raise MalformedProviderOutput("provider did not return valid JSON")


class _ListedOption(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	text: str = Field(min_length=1)
	is_correct: bool = Field(default=False, validation_alias=AliasChoices("isCorrect", "is_correct"))


class _ListedQuestion(BaseModel):
	"""One entry of the flat question-list format."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	text: str = Field(min_length=1, validation_alias=AliasChoices("text", "question", "statement"))
	question_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("questionType", "type"))
	options: List[Union[_ListedOption, str]] = Field(default_factory=list)
	correct_index: Optional[int] = Field(default=None, validation_alias=AliasChoices("correctIndex", "correct_index"))
	answer: Optional[Union[bool, str]] = None
	explanation: Optional[str] = None


def _normalize_type(raw: Optional[str]) -> Optional[str]:
	if raw is None:
		return None
	key = re.sub(r"[\s\-/]+", "_", raw.strip().upper())
	normalized = _TYPE_ALIASES.get(key) or _TYPE_ALIASES.get(key.replace("_", ""))
	if normalized is None:
		raise MalformedProviderOutput(f"unknown question type {raw!r}")
	return normalized


def _true_false_options(answer: bool) -> List[OptionDraft]:
	return [OptionDraft(text="True", is_correct=answer is True), OptionDraft(text="False", is_correct=answer is False)]


def _from_sections(quiz: ProviderQuiz) -> List[QuestionDraft]:
	drafts: List[QuestionDraft] = []
	for item in quiz.mcq:
		drafts.append(QuestionDraft(
			text=item.question,
			question_type="MCQ",
			section=AUTO_SECTION,
			explanation=item.explanation,
			options=[OptionDraft(text=o, is_correct=i == item.correct_index) for i, o in enumerate(item.options)],
		))
	for item in quiz.true_false:
		drafts.append(QuestionDraft(
			text=item.statement,
			question_type="TRUE_FALSE",
			section=AUTO_SECTION,
			explanation=item.explanation,
			options=_true_false_options(item.answer),
		))
	manual = (
		("SHORT_ANSWER", quiz.short_answer),
		("ESSAY", quiz.essay),
		("FILL_IN_THE_BLANK", quiz.fill_in_the_blank),
	)
	for qtype, items in manual:
		for item in items:
			drafts.append(QuestionDraft(
				text=item.question,
				question_type=qtype,
				section=MANUAL_SECTION,
				reference_answer=item.answer or None,
			))
	return drafts


def _from_list(items: List[_ListedQuestion]) -> List[QuestionDraft]:
	drafts: List[QuestionDraft] = []
	for item in items:
		qtype = _normalize_type(item.question_type) or ("MCQ" if item.options else "SHORT_ANSWER")
		if qtype == "TRUE_FALSE" and not item.options:
			if not isinstance(item.answer, bool):
				raise MalformedProviderOutput("true/false question without a boolean answer")
			options = _true_false_options(item.answer)
		else:
			options = []
			for i, opt in enumerate(item.options):
				if isinstance(opt, str):
					options.append(OptionDraft(text=opt, is_correct=i == item.correct_index))
				else:
					options.append(OptionDraft(text=opt.text, is_correct=opt.is_correct))
		auto = qtype in ("MCQ", "TRUE_FALSE")
		drafts.append(QuestionDraft(
			text=item.text,
			question_type=qtype,
			section=AUTO_SECTION if auto else MANUAL_SECTION,
			explanation=item.explanation,
			reference_answer=None if auto or item.answer is None else str(item.answer),
			options=options,
		))
	return drafts


def parse_quiz(text: str) -> ParsedQuiz:
	"""Turn provider output into validated question drafts.

	Accepts either the sectioned object (mcq / trueFalse / shortAnswer / essay /
	fillInTheBlank) or a flat list of questions. Anything that does not validate
	raises MalformedProviderOutput; a partial quiz is never returned.
	"""
	data = extract_json(text)
	try:
		if isinstance(data, dict) and isinstance(data.get("questions"), list):
			data = data["questions"]
		if isinstance(data, list):
			drafts = _from_list([_ListedQuestion.model_validate(q) for q in data])
		elif isinstance(data, dict):
			drafts = _from_sections(ProviderQuiz.model_validate(data))
		else:
			raise MalformedProviderOutput(f"expected a JSON object or list, got {type(data).__name__}")
		return ParsedQuiz(questions=drafts)
	except ValidationError as exc:
		raise MalformedProviderOutput(f"quiz failed validation: {exc.error_count()} error(s): {exc.errors()[0]['msg']}") from exc


class ArtifactGenerator:
	"""Generates one artifact per call. Never touches the database."""

	_prompts = {
		ArtifactKind.teacher_note: build_teacher_note_prompt,
		ArtifactKind.learner_note: build_learner_note_prompt,
		ArtifactKind.quiz: build_quiz_prompt,
	}

	def __init__(self, provider: ContentProvider) -> None:
		self.provider = provider

	async def generate(self, kind: ArtifactKind, ctx: GenerationContext) -> ParsedArtifact:
		kind = ArtifactKind(kind)
		prompt = self._prompts[kind](ctx)
		text = await self.provider.generate(prompt)
		generated_at = datetime.utcnow()
		provider_name = getattr(self.provider, "provider_name", type(self.provider).__name__)
		model = getattr(self.provider, "model", "unknown")
		if kind is ArtifactKind.quiz:
			quiz = parse_quiz(text)
			logger.info("Parsed quiz for %s: %d questions", ctx.topic_name, len(quiz.questions))
			return ParsedArtifact(kind=kind, quiz=quiz, provider=provider_name, model=model, generated_at=generated_at)
		if not text or not text.strip():
			raise MalformedProviderOutput(f"provider returned an empty {kind.value}")
		return ParsedArtifact(kind=kind, content=text.strip(), provider=provider_name, model=model, generated_at=generated_at)
