from __future__ import annotations
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import transaction
from ..models import Badge, QuizAttempt, StudentBadge
from ..settings import settings

logger = logging.getLogger(__name__)

FIRST_STEP = "First Step"
QUIZ_MASTER = "Quiz Master"
HIGH_ACHIEVER = "High Achiever"

BADGE_CATALOG = (
	(FIRST_STEP, "Completed your first quiz.", "/badges/first-step.svg"),
	(QUIZ_MASTER, "Completed five quizzes.", "/badges/quiz-master.svg"),
	(HIGH_ACHIEVER, "Got every auto-graded question right on a quiz.", "/badges/high-achiever.svg"),
)


def seed_badge_catalog(db: Session) -> List[Badge]:
	"""Insert any catalog badge that is missing. Existing rows are left alone."""
	existing = set(db.execute(select(Badge.name)).scalars().all())
	added = [Badge(name=n, description=d, icon=i) for n, d, i in BADGE_CATALOG if n not in existing]
	if added:
		with transaction(db):
			db.add_all(added)
		logger.info("Seeded badges: %s", ", ".join(b.name for b in added))
	return added


def list_student_badges(db: Session, student_id: str) -> List[StudentBadge]:
	stmt = (
		select(StudentBadge)
		.where(StudentBadge.student_id == student_id)
		.order_by(StudentBadge.awarded_at, StudentBadge.id)
	)
	return list(db.execute(stmt).scalars().all())


class BadgeAwardEvaluator:
	"""Applies the badge rules after an attempt has been flushed.

	Runs inside the caller's transaction. Awards are idempotent: a badge the
	student already holds is skipped, and a concurrent insert that trips the
	(student, badge) unique constraint is rolled back to a savepoint and ignored.
	"""

	def __init__(self, db: Session, *, quiz_master_threshold: Optional[int] = None) -> None:
		self.db = db
		self.quiz_master_threshold = quiz_master_threshold or settings.quiz_master_threshold

	def attempt_count(self, student_id: str) -> int:
		return self.db.scalar(
			select(func.count()).select_from(QuizAttempt).where(QuizAttempt.student_id == student_id)
		) or 0

	def evaluate(self, student_id: str, attempt: QuizAttempt) -> List[str]:
		count = self.attempt_count(student_id)
		rules = (
			(FIRST_STEP, count == 1),
			(QUIZ_MASTER, count >= self.quiz_master_threshold),
			(HIGH_ACHIEVER, attempt.total_questions > 0 and attempt.score == attempt.total_questions),
		)
		return [name for name, earned in rules if earned and self._award(student_id, name)]

	def _award(self, student_id: str, name: str) -> bool:
		badge = self.db.scalar(select(Badge).where(Badge.name == name))
		if badge is None:
			logger.warning("Badge %r is not in the catalog; skipping award", name)
			return False
		held = self.db.scalar(
			select(StudentBadge.id).where(StudentBadge.student_id == student_id, StudentBadge.badge_id == badge.id)
		)
		if held is not None:
			return False
		try:
			with self.db.begin_nested():
				self.db.add(StudentBadge(student_id=student_id, badge_id=badge.id))
		except IntegrityError:
			logger.info("Badge %r already awarded to %s by a concurrent submission", name, student_id)
			return False
		logger.info("Awarded %r to student %s", name, student_id)
		return True
