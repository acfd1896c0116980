from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from scholarpath import models
from scholarpath.db import Base
from scholarpath.services import scoring
from scholarpath.services.badges import (
	FIRST_STEP,
	HIGH_ACHIEVER,
	QUIZ_MASTER,
	BadgeAwardEvaluator,
	list_student_badges,
	seed_badge_catalog,
)

from conftest import correct_option_id, make_quiz, mcq, wrong_option_id


def _award_count(db, student_id, name):
	return db.scalar(
		select(func.count())
		.select_from(models.StudentBadge)
		.join(models.Badge)
		.where(models.StudentBadge.student_id == student_id, models.Badge.name == name)
	)


def test_first_attempt_earns_first_step(db):
	quiz = make_quiz(db, [mcq(0), mcq(0)])
	q1, _ = quiz.questions
	_, _, awarded = scoring.submit_auto_graded(db, quiz.id, "s1", {q1.id: correct_option_id(q1)})
	assert awarded == [FIRST_STEP]

	_, _, awarded = scoring.submit_auto_graded(db, quiz.id, "s1", {q1.id: wrong_option_id(q1)})
	assert awarded == []


def test_perfect_score_earns_high_achiever_once(db):
	quiz = make_quiz(db, [mcq(0)])
	q = quiz.questions[0]
	_, _, first = scoring.submit_auto_graded(db, quiz.id, "s1", {q.id: correct_option_id(q)})
	_, _, second = scoring.submit_auto_graded(db, quiz.id, "s1", {q.id: correct_option_id(q)})

	assert HIGH_ACHIEVER in first
	assert HIGH_ACHIEVER not in second
	assert _award_count(db, "s1", HIGH_ACHIEVER) == 1


def test_empty_auto_section_never_earns_high_achiever(db):
	quiz = make_quiz(db, [{"type": "ESSAY", "answer": "anything"}])
	_, result, awarded = scoring.submit_auto_graded(db, quiz.id, "s1", {})
	assert result.total == 0
	assert HIGH_ACHIEVER not in awarded


def test_fifth_attempt_earns_quiz_master_exactly_once(db):
	quiz = make_quiz(db, [mcq(0)])
	q = quiz.questions[0]
	awarded_per_attempt = [
		scoring.submit_auto_graded(db, quiz.id, "s1", {q.id: wrong_option_id(q)})[2]
		for _ in range(6)
	]

	assert [QUIZ_MASTER in a for a in awarded_per_attempt] == [False, False, False, False, True, False]
	assert _award_count(db, "s1", QUIZ_MASTER) == 1
	assert db.scalar(select(func.count()).select_from(models.QuizAttempt)) == 6


def test_awarding_twice_is_a_silent_noop(db):
	attempt = models.QuizAttempt(quiz_id=1, student_id="s9", answers={}, score=3, total_questions=3)
	db.add(attempt)
	db.flush()
	evaluator = BadgeAwardEvaluator(db)

	assert evaluator.evaluate("s9", attempt) == [FIRST_STEP, HIGH_ACHIEVER]
	assert evaluator.evaluate("s9", attempt) == []
	db.commit()

	assert _award_count(db, "s9", FIRST_STEP) == 1
	assert _award_count(db, "s9", HIGH_ACHIEVER) == 1


def test_concurrent_award_conflict_is_absorbed(db, monkeypatch):
	attempt = models.QuizAttempt(quiz_id=1, student_id="s7", answers={}, score=0, total_questions=2)
	db.add(attempt)
	db.flush()
	badge = db.scalar(select(models.Badge).where(models.Badge.name == FIRST_STEP))
	# Another request got there first, after our "already held?" check
	db.add(models.StudentBadge(student_id="s7", badge_id=badge.id))
	db.flush()
	evaluator = BadgeAwardEvaluator(db)
	real_scalar = db.scalar

	def blind_scalar(statement, *args, **kwargs):
		if "student_badges" in str(statement):
			return None
		return real_scalar(statement, *args, **kwargs)

	monkeypatch.setattr(db, "scalar", blind_scalar)
	assert evaluator.evaluate("s7", attempt) == []
	monkeypatch.undo()

	db.commit()
	assert _award_count(db, "s7", FIRST_STEP) == 1
	assert db.get(models.QuizAttempt, attempt.id) is not None


def test_missing_catalog_badge_is_skipped(db):
	db.execute(models.Badge.__table__.delete().where(models.Badge.name == FIRST_STEP))
	db.commit()
	quiz = make_quiz(db, [mcq(0)])
	_, _, awarded = scoring.submit_auto_graded(db, quiz.id, "s1", {})
	assert awarded == []


def test_quiz_master_threshold_is_configurable(db):
	evaluator = BadgeAwardEvaluator(db, quiz_master_threshold=2)
	for _ in range(2):
		attempt = models.QuizAttempt(quiz_id=1, student_id="s3", answers={}, score=0, total_questions=1)
		db.add(attempt)
		db.flush()
		awarded = evaluator.evaluate("s3", attempt)
	assert QUIZ_MASTER in awarded


def test_seed_is_idempotent_and_badges_are_listed(db):
	assert seed_badge_catalog(db) == []
	assert db.scalar(select(func.count()).select_from(models.Badge)) == 3

	quiz = make_quiz(db, [mcq(0)])
	q = quiz.questions[0]
	scoring.submit_auto_graded(db, quiz.id, "s1", {q.id: correct_option_id(q)})

	names = [sb.badge.name for sb in list_student_badges(db, "s1")]
	assert sorted(names) == sorted([FIRST_STEP, HIGH_ACHIEVER])
	assert list_student_badges(db, "nobody") == []


def test_parallel_submissions_award_quiz_master_once(tmp_path):
	engine = create_engine(f"sqlite:///{tmp_path / 'attempts.db'}", connect_args={"check_same_thread": False})
	Base.metadata.create_all(engine)
	Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
	try:
		with Session() as setup:
			seed_badge_catalog(setup)
			quiz_id = make_quiz(setup, [mcq(0)]).id
			for _ in range(3):
				scoring.submit_auto_graded(setup, quiz_id, "s1", {})

		workers = 4
		barrier = threading.Barrier(workers)

		def submit(_):
			with Session() as session:
				barrier.wait()
				return scoring.submit_auto_graded(session, quiz_id, "s1", {})[2]

		with ThreadPoolExecutor(max_workers=workers) as pool:
			results = list(pool.map(submit, range(workers)))

		assert sum(QUIZ_MASTER in awarded for awarded in results) == 1
		with Session() as check:
			assert _award_count(check, "s1", QUIZ_MASTER) == 1
			assert _award_count(check, "s1", FIRST_STEP) == 1
			assert check.scalar(select(func.count()).select_from(models.QuizAttempt)) == 7
	finally:
		engine.dispose()
