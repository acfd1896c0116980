from __future__ import annotations
import copy
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import DeletionFailed, NotFound, PersistenceFailed
from ..models import BUNDLE_STATUSES, LearnerNote, LessonBundle, LessonNote, Option, Question, Quiz, Resource
from ..schemas import BundlePatch

logger = logging.getLogger(__name__)


def group_quiz_questions(quiz: Quiz) -> Dict[str, list]:
	"""Display grouping of a quiz's questions by type, in question order."""
	grouped: Dict[str, list] = {"mcq": [], "trueFalse": [], "shortAnswer": [], "essay": [], "fillInTheBlank": []}
	for q in quiz.questions:
		options = list(q.options)
		qtype = q.question_type or ("MCQ" if options else None)
		if qtype == "MCQ":
			grouped["mcq"].append({
				"id": q.id,
				"question": q.text,
				"explanation": q.explanation,
				"options": [o.text for o in options],
				"correctIndex": next((i for i, o in enumerate(options) if o.is_correct), -1),
			})
		elif qtype == "TRUE_FALSE":
			correct = next((o for o in options if o.is_correct), None)
			grouped["trueFalse"].append({
				"id": q.id,
				"statement": q.text,
				"explanation": q.explanation,
				"answer": bool(correct and correct.text.strip().lower() == "true"),
			})
		elif qtype == "ESSAY":
			grouped["essay"].append({"id": q.id, "question": q.text, "answer": q.reference_answer})
		elif qtype == "FILL_IN_THE_BLANK":
			grouped["fillInTheBlank"].append({"id": q.id, "question": q.text, "answer": q.reference_answer})
		else:
			grouped["shortAnswer"].append({"id": q.id, "question": q.text, "answer": q.reference_answer})
	return grouped


class BundleLifecycleManager:
	"""Everything that happens to a bundle after it has been created."""

	def __init__(self, db: Session) -> None:
		self.db = db

	def get(self, bundle_id: int, teacher_id: str, *, is_admin: bool = False) -> LessonBundle:
		bundle = self.db.get(LessonBundle, bundle_id)
		# Someone else's bundle looks exactly like a missing one
		if bundle is None or (bundle.teacher_id != teacher_id and not is_admin):
			raise NotFound("Bundle", bundle_id)
		return bundle

	def list_bundles(self, teacher_id: str, *, status: Optional[str] = None, search: Optional[str] = None) -> List[LessonBundle]:
		stmt = select(LessonBundle).where(LessonBundle.teacher_id == teacher_id)
		if status in BUNDLE_STATUSES:
			stmt = stmt.where(LessonBundle.status == status)
		stmt = stmt.order_by(LessonBundle.created_at.desc(), LessonBundle.id.desc())
		bundles = list(self.db.execute(stmt).scalars().all())
		needle = (search or "").strip().lower()
		if not needle:
			return bundles
		return [
			b for b in bundles
			if needle in b.title.lower()
			or needle in (b.description or "").lower()
			or any(needle in str(tag).lower() for tag in (b.tags or []))
		]

	def update(self, bundle_id: int, teacher_id: str, patch: BundlePatch) -> LessonBundle:
		bundle = self.get(bundle_id, teacher_id)
		# An explicit null clears the description; on the other fields it changes nothing
		changes = {
			k: v for k, v in patch.model_dump(exclude_unset=True).items()
			if v is not None or k == "description"
		}
		if not changes:
			return bundle
		try:
			with transaction(self.db):
				if "title" in changes:
					bundle.title = changes["title"]
				if "description" in changes:
					bundle.description = changes["description"]
				if "tags" in changes:
					bundle.tags = [t for t in dict.fromkeys(t.strip() for t in changes["tags"]) if t]
				if "status" in changes:
					self._apply_status(bundle, changes["status"])
				self.db.flush()
		except SQLAlchemyError as exc:
			logger.exception("Updating bundle %s failed", bundle_id)
			raise PersistenceFailed(str(exc)) from exc
		logger.info("Bundle %s updated: %s", bundle_id, ", ".join(sorted(changes)))
		return bundle

	def set_status(self, bundle_id: int, teacher_id: str, status: str) -> LessonBundle:
		return self.update(bundle_id, teacher_id, BundlePatch(status=status))

	def _apply_status(self, bundle: LessonBundle, status: str) -> None:
		# Any transition is allowed; it does not reach content students already have
		bundle.status = status
		bundle.learner_note.status = "published" if status == "published" else "draft"

	def record_usage(self, bundle_id: int, teacher_id: str) -> LessonBundle:
		bundle = self.get(bundle_id, teacher_id)
		with transaction(self.db):
			bundle.usage_count = (bundle.usage_count or 0) + 1
			bundle.last_used_at = datetime.utcnow()
		return bundle

	def attach_resources(self, bundle_id: int, teacher_id: str, resource_ids: Sequence[int]) -> LessonBundle:
		bundle = self.get(bundle_id, teacher_id)
		wanted = set(resource_ids)
		found = self.db.execute(
			select(Resource).where(Resource.id.in_(wanted), Resource.teacher_id == teacher_id)
		).scalars().all()
		missing = wanted - {r.id for r in found}
		if missing:
			raise NotFound("Resource", sorted(missing)[0])
		with transaction(self.db):
			for resource in found:
				if resource not in bundle.resources:
					bundle.resources.append(resource)
		return bundle

	def duplicate(
		self,
		bundle_id: int,
		teacher_id: str,
		*,
		org_id: Optional[str] = None,
		is_admin: bool = False,
	) -> LessonBundle:
		"""Deep-copy a bundle's notes and quiz into new rows under a new draft bundle.

		Resources are shared by reference, not copied.
		"""
		src = self.get(bundle_id, teacher_id, is_admin=is_admin)
		org_id = org_id or src.org_id
		logger.info("Duplicating bundle %s for teacher %s", src.id, teacher_id)
		db = self.db
		try:
			with transaction(db):
				lesson = LessonNote(
					teacher_id=teacher_id,
					org_id=org_id,
					topic_id=src.topic_id,
					content=src.lesson_note.content,
					ai_provider=src.lesson_note.ai_provider,
					ai_model=src.lesson_note.ai_model,
					ai_generated_at=src.lesson_note.ai_generated_at,
				)
				learner = LearnerNote(
					author_id=teacher_id,
					org_id=org_id,
					topic_id=src.topic_id,
					content=src.learner_note.content,
					status="draft",
					ai_provider=src.learner_note.ai_provider,
					ai_model=src.learner_note.ai_model,
					ai_generated_at=src.learner_note.ai_generated_at,
				)
				quiz = Quiz(
					title=f"{src.quiz.title} (Copy)",
					subject=src.quiz.subject,
					teacher_id=teacher_id,
					org_id=org_id,
					ai_provider=src.quiz.ai_provider,
					ai_model=src.quiz.ai_model,
					ai_generated_at=src.quiz.ai_generated_at,
				)
				db.add_all([lesson, learner, quiz])
				db.flush()

				pairs = []
				for q in src.quiz.questions:
					new_q = Question(
						quiz_id=quiz.id,
						position=q.position,
						section=q.section,
						text=q.text,
						explanation=q.explanation,
						question_type=q.question_type,
						reference_answer=q.reference_answer,
					)
					db.add(new_q)
					pairs.append((q, new_q))
				db.flush()
				for q, new_q in pairs:
					for o in q.options:
						db.add(Option(question_id=new_q.id, position=o.position, text=o.text, is_correct=o.is_correct))
				db.flush()

				bundle = LessonBundle(
					teacher_id=teacher_id,
					org_id=org_id,
					topic_id=src.topic_id,
					title=f"{src.title} (Copy)",
					description=src.description,
					status="draft",
					tags=list(src.tags or []),
					lesson_note_id=lesson.id,
					learner_note_id=learner.id,
					quiz_id=quiz.id,
					generation_context=copy.deepcopy(src.generation_context or {}),
					ai_provider=src.ai_provider,
					ai_model=src.ai_model,
					ai_generated_at=src.ai_generated_at,
					resources=list(src.resources),
				)
				db.add(bundle)
				db.flush()
		except SQLAlchemyError as exc:
			logger.exception("Duplicating bundle %s failed; nothing was created", bundle_id)
			raise PersistenceFailed(str(exc)) from exc
		logger.info("Bundle %s duplicated as %s", bundle_id, bundle.id)
		return bundle

	def delete(self, bundle_id: int, teacher_id: str) -> None:
		"""Remove a bundle and everything it owns, or nothing at all.

		Order: options, questions, quiz, lesson note, learner note, bundle.
		Resources survive; only their link to this bundle goes with the bundle row.
		"""
		bundle = self.get(bundle_id, teacher_id)
		quiz_id = bundle.quiz_id
		lesson_note_id = bundle.lesson_note_id
		learner_note_id = bundle.learner_note_id
		question_ids = select(Question.id).where(Question.quiz_id == quiz_id)
		steps = [
			("options", delete(Option).where(Option.question_id.in_(question_ids))),
			("questions", delete(Question).where(Question.quiz_id == quiz_id)),
			("quiz", delete(Quiz).where(Quiz.id == quiz_id)),
			("lesson note", delete(LessonNote).where(LessonNote.id == lesson_note_id)),
			("learner note", delete(LearnerNote).where(LearnerNote.id == learner_note_id)),
			("bundle", delete(LessonBundle).where(LessonBundle.id == bundle_id)),
		]
		logger.info("Deleting bundle %s", bundle_id)
		try:
			with transaction(self.db):
				for step, (name, stmt) in enumerate(steps, start=1):
					result = self.db.execute(stmt, execution_options={"synchronize_session": False})
					logger.debug("  [%d/%d] deleted %s rows of %s", step, len(steps), result.rowcount, name)
		except SQLAlchemyError as exc:
			logger.exception("Cascade delete of bundle %s failed; rolled back", bundle_id)
			raise DeletionFailed(str(exc)) from exc
		# Rows went away behind the ORM's back
		self.db.expire_all()
		logger.info("Bundle %s and its notes and quiz deleted", bundle_id)
