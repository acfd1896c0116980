from __future__ import annotations
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import MalformedSubmission, NotFound, PersistenceFailed
from ..models import Option, Question, Quiz, QuizAttempt
from ..schemas import ManualQuestionOut, OptionOut, QuestionOut, QuizOut, ScoreResult
from .badges import BadgeAwardEvaluator

logger = logging.getLogger(__name__)

AUTO_GRADED_TYPES = ("MCQ", "TRUE_FALSE")

# Fixed pool of locks; a student always maps to the same one
_LOCK_STRIPES = 64
_student_locks: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))


def _lock_for(student_id: str) -> threading.Lock:
	return _student_locks[hash(student_id) % _LOCK_STRIPES]


def is_auto_graded(question: Question) -> bool:
	"""MCQ and TRUE_FALSE are auto-graded.

	Rows without a question_type predate the column; if they carry options they
	are graded as choice questions. Everything else goes to the manual section.
	"""
	if question.question_type in AUTO_GRADED_TYPES:
		return True
	return question.question_type is None and len(question.options) > 0


def classify(quiz: Quiz) -> Tuple[List[Question], List[Question]]:
	auto: List[Question] = []
	manual: List[Question] = []
	for q in quiz.questions:
		(auto if is_auto_graded(q) else manual).append(q)
	return auto, manual


def _norm(value: Any) -> str:
	return str(value).strip().casefold()


def _correct_option(question: Question) -> Optional[Option]:
	return next((o for o in question.options if o.is_correct), None)


def chosen_option(question: Question, answer: Any) -> Optional[Option]:
	"""Resolve a submitted answer to one of the question's options.

	An int is an option id. Text is matched against option text first, so an
	option reading "4" wins over the option whose id is 4; a digit string that
	matches no option text is then tried as an id.
	"""
	if answer is None or isinstance(answer, bool):
		return None
	if isinstance(answer, int):
		return next((o for o in question.options if o.id == answer), None)
	text = _norm(answer)
	by_text = next((o for o in question.options if _norm(o.text) == text), None)
	if by_text is not None or not text.isdigit():
		return by_text
	return next((o for o in question.options if o.id == int(text)), None)


def answer_is_correct(question: Question, answer: Any) -> bool:
	correct = _correct_option(question)
	if answer is None or correct is None:
		return False
	if question.question_type == "TRUE_FALSE":
		# Compared by value, so True matches whichever option reads "True"
		if isinstance(answer, bool):
			return _norm(correct.text) == ("true" if answer else "false")
		chosen = chosen_option(question, answer)
		return chosen is not None and _norm(chosen.text) == _norm(correct.text)
	chosen = chosen_option(question, answer)
	return chosen is not None and chosen.id == correct.id


def percentage(correct: int, total: int) -> int:
	"""Whole-number percentage, halves rounded up; 0 when there is nothing to score."""
	if total <= 0:
		return 0
	return (200 * correct + total) // (2 * total)


def _normalize_answers(quiz: Quiz, answers: Mapping[Any, Any]) -> Dict[int, Any]:
	known = {q.id for q in quiz.questions}
	normalized: Dict[int, Any] = {}
	for key, value in (answers or {}).items():
		try:
			qid = int(key)
		except (TypeError, ValueError):
			raise MalformedSubmission(f"answer key {key!r} is not a question id")
		if qid not in known:
			raise MalformedSubmission(f"question {qid} is not part of quiz {quiz.id}")
		normalized[qid] = value
	return normalized


def score(quiz: Quiz, answers: Mapping[Any, Any]) -> ScoreResult:
	"""Score the auto-graded section. Unanswered questions count as wrong."""
	submitted = _normalize_answers(quiz, answers)
	auto, _ = classify(quiz)
	correct = sum(1 for q in auto if answer_is_correct(q, submitted.get(q.id)))
	total = len(auto)
	return ScoreResult(correct=correct, total=total, percentage=percentage(correct, total))


def get_quiz(db: Session, quiz_id: int) -> Quiz:
	quiz = db.get(Quiz, quiz_id)
	if quiz is None:
		raise NotFound("Quiz", quiz_id)
	return quiz


def submit_auto_graded(
	db: Session,
	quiz_id: int,
	student_id: str,
	answers: Mapping[Any, Any],
	*,
	org_id: Optional[str] = None,
) -> Tuple[QuizAttempt, ScoreResult, List[str]]:
	"""Record one attempt and run the badge rules for it.

	Each call creates a new attempt; earlier ones are never touched. Attempts
	and awards for one student are serialized so the attempt count each
	evaluation sees is exact.
	"""
	quiz = get_quiz(db, quiz_id)
	result = score(quiz, answers)
	stored = {str(k): v for k, v in _normalize_answers(quiz, answers).items()}
	with _lock_for(student_id):
		try:
			with transaction(db):
				attempt = QuizAttempt(
					quiz_id=quiz.id,
					student_id=student_id,
					org_id=org_id,
					answers=stored,
					score=result.correct,
					total_questions=result.total,
				)
				db.add(attempt)
				db.flush()
				awarded = BadgeAwardEvaluator(db).evaluate(student_id, attempt)
		except SQLAlchemyError as exc:
			logger.exception("Recording attempt on quiz %s for student %s failed", quiz_id, student_id)
			raise PersistenceFailed(str(exc)) from exc
	logger.info(
		"Student %s scored %d/%d on quiz %s (attempt %s, badges: %s)",
		student_id, result.correct, result.total, quiz.id, attempt.id, ", ".join(awarded) or "none",
	)
	return attempt, result, awarded


def has_attempted(db: Session, quiz_id: int, student_id: str) -> bool:
	return bool(db.scalar(
		select(exists().where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.student_id == student_id))
	))


def get_manual_questions(db: Session, quiz_id: int, student_id: Optional[str] = None) -> List[ManualQuestionOut]:
	"""Manual-section questions; reference answers only after the student has submitted."""
	quiz = get_quiz(db, quiz_id)
	_, manual = classify(quiz)
	reveal = student_id is not None and has_attempted(db, quiz.id, student_id)
	return [
		ManualQuestionOut(
			id=q.id,
			text=q.text,
			question_type=q.question_type,
			section=q.section,
			reference_answer=q.reference_answer if reveal else None,
		)
		for q in manual
	]


def student_quiz_view(quiz: Quiz) -> QuizOut:
	"""The quiz as a student sees it before answering: no correct flags, no answers."""
	return QuizOut(
		id=quiz.id,
		title=quiz.title,
		subject=quiz.subject,
		questions=[
			QuestionOut(
				id=q.id,
				position=q.position,
				section=q.section,
				text=q.text,
				question_type=q.question_type,
				options=[OptionOut(id=o.id, text=o.text) for o in q.options],
			)
			for q in quiz.questions
		],
	)
