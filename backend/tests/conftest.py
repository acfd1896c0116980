from __future__ import annotations

import asyncio
import json
from typing import Dict, Iterator, List, Optional

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from scholarpath import models
from scholarpath.db import Base
from scholarpath.errors import ProviderUnavailable
from scholarpath.schemas import GenerationContext
from scholarpath.services.badges import seed_badge_catalog


QUIZ_JSON = {
	"mcq": [
		{"question": "What is 2 + 2?", "options": ["3", "4", "5", "6"], "correctIndex": 1, "explanation": "Basic addition"},
		{"question": "Which is a prime number?", "options": ["4", "6", "7", "9"], "correctIndex": 2},
	],
	"trueFalse": [
		{"statement": "Accra is the capital of Ghana.", "answer": True, "explanation": "It is."},
	],
	"shortAnswer": [
		{"question": "Name one primary colour.", "answer": "Red"},
	],
	"essay": [
		{"question": "Explain why we add numbers.", "guide": "Mentions counting and combining."},
	],
}


class FakeProvider:
	"""Returns canned text per artifact kind; can fail or stall a chosen kind."""

	provider_name = "fake"
	model = "fake-model"

	def __init__(
		self,
		*,
		quiz_text: Optional[str] = None,
		fail: Optional[str] = None,
		stall: Optional[str] = None,
		stall_seconds: float = 5.0,
	) -> None:
		self.quiz_text = quiz_text if quiz_text is not None else json.dumps(QUIZ_JSON)
		self.fail = fail
		self.stall = stall
		self.stall_seconds = stall_seconds
		self.calls: List[str] = []

	@staticmethod
	def kind_of(prompt: str) -> str:
		if "assessment writer" in prompt:
			return "quiz"
		if "learner-friendly" in prompt:
			return "learnerNote"
		return "teacherNote"

	async def generate(self, prompt: str) -> str:
		kind = self.kind_of(prompt)
		self.calls.append(kind)
		if kind == self.stall:
			await asyncio.sleep(self.stall_seconds)
		if kind == self.fail:
			raise ProviderUnavailable(f"{kind} provider down")
		if kind == "quiz":
			return self.quiz_text
		if kind == "learnerNote":
			return "## Adding numbers\n\n- Adding puts things together."
		return "### TEACHER INFORMATION\n\nSchool: Test School"


@pytest.fixture()
def engine():
	eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	Base.metadata.create_all(eng)
	try:
		yield eng
	finally:
		eng.dispose()


@pytest.fixture()
def session_factory(engine):
	return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory) -> Iterator[Session]:
	session = session_factory()
	seed_badge_catalog(session)
	try:
		yield session
	finally:
		session.close()


@pytest.fixture()
def ctx() -> GenerationContext:
	return GenerationContext(
		school="Test School",
		term="1",
		week="3",
		content_standard_code="B1.1.1.1",
		indicator_codes="B1.1.1.1.1, B1.1.1.1.2",
		class_name="Basic 1",
		subject_name="Mathematics",
		strand_name="Number",
		topic_name="Addition",
		num_questions=5,
	)


def count_rows(db: Session) -> Dict[str, int]:
	tables = {
		"lesson_notes": models.LessonNote,
		"learner_notes": models.LearnerNote,
		"quizzes": models.Quiz,
		"questions": models.Question,
		"options": models.Option,
		"bundles": models.LessonBundle,
	}
	return {name: db.scalar(select(func.count()).select_from(model)) for name, model in tables.items()}


def make_quiz(db: Session, items: List[dict], *, title: str = "Quiz", teacher_id: str = "t1") -> models.Quiz:
	"""Build a quiz directly. Each entry: {type, text, options: [(text, correct)], answer}."""
	quiz = models.Quiz(title=title, subject="Mathematics", teacher_id=teacher_id, org_id="org1")
	db.add(quiz)
	db.flush()
	for position, item in enumerate(items):
		q = models.Question(
			quiz_id=quiz.id,
			position=position,
			section=item.get("section", "Section A"),
			text=item.get("text", f"Question {position + 1}"),
			question_type=item.get("type"),
			reference_answer=item.get("answer"),
		)
		db.add(q)
		db.flush()
		for opt_pos, (text, correct) in enumerate(item.get("options", [])):
			db.add(models.Option(question_id=q.id, position=opt_pos, text=text, is_correct=correct))
	db.commit()
	db.refresh(quiz)
	return quiz


def mcq(correct: int = 0, n: int = 4, **extra) -> dict:
	return {"type": "MCQ", "options": [(f"opt{i}", i == correct) for i in range(n)], **extra}


def true_false(answer: bool = True, **extra) -> dict:
	return {"type": "TRUE_FALSE", "options": [("True", answer), ("False", not answer)], **extra}


def correct_option_id(question: models.Question) -> int:
	return next(o.id for o in question.options if o.is_correct)


def wrong_option_id(question: models.Question) -> int:
	return next(o.id for o in question.options if not o.is_correct)
