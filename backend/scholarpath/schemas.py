from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator


BundleStatus = Literal["draft", "published", "archived"]
QuestionType = Literal["MCQ", "TRUE_FALSE", "SHORT_ANSWER", "ESSAY", "FILL_IN_THE_BLANK"]


class ArtifactKind(str, Enum):
	teacher_note = "teacherNote"
	learner_note = "learnerNote"
	quiz = "quiz"


class GenerationContext(BaseModel):
	"""Curriculum values a bundle is generated from. Frozen once built."""

	model_config = ConfigDict(frozen=True)

	school: str
	term: str
	week: str
	day_date: str = ""
	duration: str = ""
	class_size: Optional[int] = None
	content_standard_code: str
	indicator_codes: Tuple[str, ...] = ()
	reference: str = ""
	class_name: str = "N/A"
	subject_name: str = "N/A"
	strand_name: str = "N/A"
	topic_name: str
	num_questions: int = Field(default=20, ge=1, le=100)

	@field_validator("indicator_codes", mode="before")
	@classmethod
	def _split_codes(cls, v):
		if v is None:
			return ()
		if isinstance(v, str):
			return tuple(c.strip() for c in v.split(",") if c.strip())
		return tuple(str(c).strip() for c in v if str(c).strip())

	def snapshot(self) -> dict:
		data = self.model_dump()
		data["indicator_codes"] = list(self.indicator_codes)
		return data


# ---- Provider quiz wire format ----

class _WireItem(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")


class McqItem(_WireItem):
	question: str = Field(min_length=1)
	options: List[str] = Field(min_length=2)
	correct_index: int = Field(alias="correctIndex")
	explanation: Optional[str] = None

	@model_validator(mode="after")
	def _check_index(self):
		if not 0 <= self.correct_index < len(self.options):
			raise ValueError(f"correctIndex {self.correct_index} out of range for {len(self.options)} options")
		return self


class TrueFalseItem(_WireItem):
	statement: str = Field(min_length=1)
	answer: StrictBool
	explanation: Optional[str] = None


class ShortAnswerItem(_WireItem):
	question: str = Field(min_length=1)
	answer: str = ""


class EssayItem(_WireItem):
	question: str = Field(min_length=1)
	# Some generations call the marking guide "guide"
	answer: str = Field(default="", validation_alias=AliasChoices("answer", "guide"))


class ProviderQuiz(_WireItem):
	mcq: List[McqItem] = Field(default_factory=list)
	true_false: List[TrueFalseItem] = Field(default_factory=list, alias="trueFalse")
	short_answer: List[ShortAnswerItem] = Field(default_factory=list, alias="shortAnswer")
	essay: List[EssayItem] = Field(default_factory=list)
	fill_in_the_blank: List[ShortAnswerItem] = Field(default_factory=list, alias="fillInTheBlank")


# ---- Validated drafts handed to persistence ----

class OptionDraft(BaseModel):
	text: str
	is_correct: bool = False


class QuestionDraft(BaseModel):
	text: str
	question_type: QuestionType
	section: str = "Section A"
	explanation: Optional[str] = None
	reference_answer: Optional[str] = None
	options: List[OptionDraft] = Field(default_factory=list)

	@model_validator(mode="after")
	def _check_shape(self):
		if self.question_type in ("MCQ", "TRUE_FALSE"):
			correct = sum(1 for o in self.options if o.is_correct)
			if correct != 1:
				raise ValueError(f"{self.question_type} question needs exactly one correct option, got {correct}")
		elif self.options:
			raise ValueError(f"{self.question_type} question carries a reference answer, not options")
		return self


class ParsedQuiz(BaseModel):
	questions: List[QuestionDraft] = Field(min_length=1)


class ParsedArtifact(BaseModel):
	kind: ArtifactKind
	content: Optional[str] = None
	quiz: Optional[ParsedQuiz] = None
	provider: str
	model: str
	generated_at: datetime


# ---- API payloads ----

class BundleCreateRequest(BaseModel):
	topic_id: str = Field(min_length=1)
	school: str = Field(min_length=1)
	term: str = Field(min_length=1)
	week: str = Field(min_length=1)
	day_date: str = ""
	duration: str = ""
	class_size: Optional[int] = None
	content_standard_code: str = Field(min_length=1)
	indicator_codes: Union[str, List[str]] = Field(default_factory=list)
	reference: str = ""
	class_name: str = "N/A"
	subject_name: str = "N/A"
	strand_name: str = "N/A"
	topic_name: str = Field(min_length=1)
	num_questions: Optional[int] = Field(default=None, ge=1, le=100)
	publish: Optional[bool] = None
	resource_ids: List[int] = Field(default_factory=list)

	def to_context(self, default_num_questions: int) -> GenerationContext:
		data = self.model_dump(exclude={"topic_id", "publish", "resource_ids", "num_questions"})
		return GenerationContext(**data, num_questions=self.num_questions or default_num_questions)


class BundlePatch(BaseModel):
	title: Optional[str] = Field(default=None, min_length=1)
	description: Optional[str] = None
	status: Optional[BundleStatus] = None
	tags: Optional[List[str]] = None

	@field_validator("title")
	@classmethod
	def _title_not_blank(cls, v):
		if v is None:
			return v
		v = v.strip()
		if not v:
			raise ValueError("title must not be blank")
		return v


class ScoreResult(BaseModel):
	correct: int
	total: int
	percentage: int


class SubmitAnswersRequest(BaseModel):
	# question id -> chosen option id, or text/bool for value-compared answers
	answers: Dict[int, Union[int, StrictBool, str]] = Field(default_factory=dict)


class OptionOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	text: str
	is_correct: Optional[bool] = None


class QuestionOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	position: int
	section: str
	text: str
	question_type: Optional[str] = None
	explanation: Optional[str] = None
	reference_answer: Optional[str] = None
	options: List[OptionOut] = Field(default_factory=list)


class QuizOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	title: str
	subject: str
	questions: List[QuestionOut] = Field(default_factory=list)


class NoteOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	content: str
	created_at: datetime


class ResourceOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	file_name: str
	file_path: str
	file_type: str


class BundleSummary(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	teacher_id: str
	org_id: str
	topic_id: str
	title: str
	description: Optional[str] = None
	status: BundleStatus
	tags: List[str] = Field(default_factory=list)
	lesson_note_id: int
	learner_note_id: int
	quiz_id: int
	ai_provider: Optional[str] = None
	ai_model: Optional[str] = None
	usage_count: int = 0
	last_used_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime


class BundleDetail(BundleSummary):
	generation_context: dict = Field(default_factory=dict)
	lesson_note: NoteOut
	learner_note: NoteOut
	quiz: QuizOut
	resources: List[ResourceOut] = Field(default_factory=list)
	quiz_data: Dict[str, list] = Field(default_factory=dict)


class AttemptResult(BaseModel):
	attempt_id: int
	score: ScoreResult
	awarded_badges: List[str] = Field(default_factory=list)
	manual_questions: int = 0


class ManualQuestionOut(BaseModel):
	id: int
	text: str
	question_type: Optional[str] = None
	section: str
	reference_answer: Optional[str] = None


class StudentBadgeOut(BaseModel):
	name: str
	description: str
	icon: str
	awarded_at: datetime


class TeacherAnalytics(BaseModel):
	total_note_views: int = 0
	total_quiz_attempts: int = 0
	average_score: float = 0.0
