from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Delete

from scholarpath import models
from scholarpath.errors import DeletionFailed, NotFound
from scholarpath.schemas import BundlePatch
from scholarpath.services.artifacts import ArtifactGenerator
from scholarpath.services.bundles import BundleTransactionCoordinator
from scholarpath.services.lifecycle import BundleLifecycleManager, group_quiz_questions

from conftest import FakeProvider, count_rows


@pytest.fixture()
def resource(db):
	row = models.Resource(teacher_id="t1", topic_id="topic-1", file_name="chart.png", file_path="/r/chart.png", file_type="image/png")
	db.add(row)
	db.commit()
	return row


@pytest.fixture()
def bundle(db, ctx, resource):
	coordinator = BundleTransactionCoordinator(db, ArtifactGenerator(FakeProvider()))
	return asyncio.run(coordinator.create_bundle("t1", "org1", "topic-1", ctx, resource_ids=[resource.id]))


def test_partial_update_leaves_other_fields(db, bundle):
	manager = BundleLifecycleManager(db)
	before_description = bundle.description

	updated = manager.update(bundle.id, "t1", BundlePatch(title="  Week 3 addition  ", tags=["maths", "maths", " term1 "]))

	assert updated.title == "Week 3 addition"
	assert updated.tags == ["maths", "term1"]
	assert updated.description == before_description
	assert updated.status == "draft"


@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
def test_blank_title_is_rejected(title):
	with pytest.raises(ValidationError):
		BundlePatch(title=title)


def test_explicit_null_clears_description(db, bundle):
	manager = BundleLifecycleManager(db)
	manager.update(bundle.id, "t1", BundlePatch(description="Revision lesson"))
	title = bundle.title

	updated = manager.update(bundle.id, "t1", BundlePatch(description=None, title=None, status=None))

	assert updated.description is None
	assert updated.title == title
	assert updated.status == "draft"
	db.expire_all()
	assert db.get(models.LessonBundle, bundle.id).description is None


def test_omitted_description_is_kept(db, bundle):
	manager = BundleLifecycleManager(db)
	manager.update(bundle.id, "t1", BundlePatch(description="Revision lesson"))
	updated = manager.update(bundle.id, "t1", BundlePatch(tags=["maths"]))
	assert updated.description == "Revision lesson"


@pytest.mark.parametrize("status", ["published", "archived", "draft"])
def test_any_status_transition_is_allowed(db, bundle, status):
	manager = BundleLifecycleManager(db)
	manager.set_status(bundle.id, "t1", "archived")
	updated = manager.set_status(bundle.id, "t1", status)
	assert updated.status == status
	assert updated.learner_note.status == ("published" if status == "published" else "draft")


def test_other_teachers_bundle_is_not_found(db, bundle):
	manager = BundleLifecycleManager(db)
	with pytest.raises(NotFound):
		manager.update(bundle.id, "someone-else", BundlePatch(title="mine now"))
	with pytest.raises(NotFound):
		manager.get(9999, "t1")
	assert manager.get(bundle.id, "someone-else", is_admin=True).id == bundle.id


def test_list_filters_by_status_and_search(db, bundle):
	manager = BundleLifecycleManager(db)
	assert [b.id for b in manager.list_bundles("t1")] == [bundle.id]
	assert manager.list_bundles("t1", status="published") == []
	assert [b.id for b in manager.list_bundles("t1", search="NUMBER")] == [bundle.id]
	assert manager.list_bundles("t1", search="geography") == []
	assert manager.list_bundles("t2") == []


def test_record_usage_counts_reuse(db, bundle):
	manager = BundleLifecycleManager(db)
	manager.record_usage(bundle.id, "t1")
	used = manager.record_usage(bundle.id, "t1")
	assert used.usage_count == 2
	assert used.last_used_at is not None


def test_duplicate_is_isolated_from_source(db, bundle, resource):
	manager = BundleLifecycleManager(db)
	manager.set_status(bundle.id, "t1", "published")

	copy = manager.duplicate(bundle.id, "t1")

	assert copy.id != bundle.id
	assert copy.status == "draft"
	assert copy.title == f"{bundle.title} (Copy)"
	assert copy.quiz.title == f"{bundle.quiz.title} (Copy)"
	assert {copy.lesson_note_id, copy.learner_note_id, copy.quiz_id}.isdisjoint(
		{bundle.lesson_note_id, bundle.learner_note_id, bundle.quiz_id}
	)
	assert copy.generation_context == bundle.generation_context
	assert [r.id for r in copy.resources] == [resource.id]

	source_texts = [q.text for q in bundle.quiz.questions]
	copy.quiz.questions[0].text = "Edited in the copy"
	copy.quiz.questions[0].options[0].text = "Edited option"
	copy.lesson_note.content = "Rewritten"
	copy.generation_context["school"] = "Other School"
	db.commit()
	db.expire_all()

	assert [q.text for q in bundle.quiz.questions] == source_texts
	assert bundle.lesson_note.content.startswith("### TEACHER INFORMATION")
	assert bundle.generation_context["school"] == "Test School"
	assert bundle.quiz.questions[0].options[0].text != "Edited option"


def test_delete_cascades_and_keeps_resources(db, bundle, resource):
	manager = BundleLifecycleManager(db)
	quiz_id = bundle.quiz_id
	question_ids = [q.id for q in bundle.quiz.questions]

	manager.delete(bundle.id, "t1")

	assert count_rows(db) == {
		"lesson_notes": 0, "learner_notes": 0, "quizzes": 0, "questions": 0, "options": 0, "bundles": 0,
	}
	assert db.scalar(select(func.count()).select_from(models.Question).where(models.Question.quiz_id == quiz_id)) == 0
	assert db.scalar(select(func.count()).select_from(models.Option).where(models.Option.question_id.in_(question_ids))) == 0
	assert db.get(models.Resource, resource.id) is not None
	assert db.scalar(select(func.count()).select_from(models.bundle_resources)) == 0


def test_delete_only_touches_its_own_bundle(db, ctx, bundle):
	coordinator = BundleTransactionCoordinator(db, ArtifactGenerator(FakeProvider()))
	other = asyncio.run(coordinator.create_bundle("t1", "org1", "topic-2", ctx))

	BundleLifecycleManager(db).delete(bundle.id, "t1")

	assert count_rows(db) == {
		"lesson_notes": 1, "learner_notes": 1, "quizzes": 1, "questions": 5, "options": 10, "bundles": 1,
	}
	assert db.get(models.LessonBundle, other.id) is not None


def test_delete_failing_midway_leaves_bundle_intact(db, bundle, monkeypatch):
	before = count_rows(db)
	calls = {"deletes": 0}
	real_execute = db.execute

	def flaky_execute(statement, *args, **kwargs):
		if isinstance(statement, Delete):
			calls["deletes"] += 1
			if calls["deletes"] == 3:
				raise OperationalError("DELETE", {}, Exception("database is locked"))
		return real_execute(statement, *args, **kwargs)

	monkeypatch.setattr(db, "execute", flaky_execute)
	with pytest.raises(DeletionFailed) as exc_info:
		BundleLifecycleManager(db).delete(bundle.id, "t1")
	monkeypatch.undo()

	assert exc_info.value.public_message == "Could not delete, nothing was removed."
	assert calls["deletes"] == 3
	assert count_rows(db) == before
	reloaded = BundleLifecycleManager(db).get(bundle.id, "t1")
	assert len(reloaded.quiz.questions) == 5
	assert all(q.options for q in reloaded.quiz.questions if q.question_type in ("MCQ", "TRUE_FALSE"))


def test_delete_unknown_bundle_is_not_found(db):
	with pytest.raises(NotFound):
		BundleLifecycleManager(db).delete(12345, "t1")


def test_detail_grouping_by_type(db, bundle):
	grouped = group_quiz_questions(bundle.quiz)
	assert len(grouped["mcq"]) == 2
	assert grouped["mcq"][0]["correctIndex"] == 1
	assert grouped["trueFalse"][0]["answer"] is True
	assert grouped["shortAnswer"][0]["answer"] == "Red"
	assert grouped["essay"][0]["answer"] == "Mentions counting and combining."
	assert grouped["fillInTheBlank"] == []
