from __future__ import annotations
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import NoteView, Quiz, QuizAttempt
from ..schemas import TeacherAnalytics

logger = logging.getLogger(__name__)


def teacher_analytics(db: Session, teacher_id: str) -> TeacherAnalytics:
	"""Views of the teacher's learner notes and attempts on the teacher's quizzes.

	average_score is the mean attempt percentage, to two places. Attempts with
	no auto-graded questions have no percentage and are left out of the mean;
	with no scored attempts at all it is 0.
	"""
	views = db.scalar(
		select(func.count(NoteView.id)).where(NoteView.teacher_id == teacher_id)
	)
	attempts = db.scalar(
		select(func.count(QuizAttempt.id))
		.join(Quiz, Quiz.id == QuizAttempt.quiz_id)
		.where(Quiz.teacher_id == teacher_id)
	)
	average = db.scalar(
		select(func.avg(QuizAttempt.score * 100.0 / QuizAttempt.total_questions))
		.join(Quiz, Quiz.id == QuizAttempt.quiz_id)
		.where(Quiz.teacher_id == teacher_id, QuizAttempt.total_questions > 0)
	)
	logger.debug("Analytics for %s: %s views, %s attempts", teacher_id, views, attempts)
	return TeacherAnalytics(
		total_note_views=views or 0,
		total_quiz_attempts=attempts or 0,
		average_score=round(float(average), 2) if average is not None else 0.0,
	)
