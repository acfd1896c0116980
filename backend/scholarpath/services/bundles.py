from __future__ import annotations
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import GenerationFailed, NotFound, PersistenceFailed
from ..models import LearnerNote, LessonBundle, LessonNote, Option, Question, Quiz, Resource
from ..schemas import ArtifactKind, GenerationContext, ParsedArtifact, QuestionDraft
from ..settings import settings
from .artifacts import ArtifactGenerator

logger = logging.getLogger(__name__)

# Fixed order used to pick which failure to report when several land together
_KIND_ORDER = (ArtifactKind.teacher_note, ArtifactKind.learner_note, ArtifactKind.quiz)


def bundle_title(ctx: GenerationContext) -> str:
	return f"{ctx.topic_name} - {ctx.class_name}"


def bundle_tags(ctx: GenerationContext) -> List[str]:
	tags: List[str] = []
	for value in (ctx.class_name, ctx.subject_name, ctx.strand_name, ctx.topic_name):
		value = (value or "").strip()
		if value and value != "N/A" and value not in tags:
			tags.append(value)
	return tags


def add_quiz_questions(db: Session, quiz: Quiz, questions: Iterable[QuestionDraft]) -> List[Question]:
	"""Insert questions, flush, then insert their options and flush again."""
	rows: List[tuple] = []
	for position, draft in enumerate(questions):
		q = Question(
			quiz_id=quiz.id,
			position=position,
			section=draft.section,
			text=draft.text,
			explanation=draft.explanation,
			question_type=draft.question_type,
			reference_answer=draft.reference_answer,
		)
		db.add(q)
		rows.append((q, draft))
	db.flush()
	for q, draft in rows:
		for position, opt in enumerate(draft.options):
			db.add(Option(question_id=q.id, position=position, text=opt.text, is_correct=opt.is_correct))
	db.flush()
	return [q for q, _ in rows]


class BundleTransactionCoordinator:
	"""Generates the three artifacts of a bundle and stores them as one unit.

	Generation runs concurrently under a single deadline. Nothing is written
	until all three artifacts are in hand; the writes then happen inside one
	transaction, so a failure at any step leaves no rows behind.
	"""

	def __init__(
		self,
		db: Session,
		generator: ArtifactGenerator,
		*,
		deadline_seconds: Optional[float] = None,
	) -> None:
		self.db = db
		self.generator = generator
		self.deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.generation_deadline_seconds

	async def create_bundle(
		self,
		teacher_id: str,
		org_id: str,
		topic_id: str,
		ctx: GenerationContext,
		*,
		publish: Optional[bool] = None,
		resource_ids: Sequence[int] = (),
	) -> LessonBundle:
		logger.info("Starting bundle generation: topic=%s class=%s subject=%s", ctx.topic_name, ctx.class_name, ctx.subject_name)
		artifacts = await self._generate_all(ctx)
		if publish is None:
			publish = settings.publish_on_create
		status = "published" if publish else "draft"
		logger.info("All artifacts ready, persisting bundle for teacher %s", teacher_id)
		return self._persist(teacher_id, org_id, topic_id, ctx, artifacts, status, resource_ids)

	async def _generate_all(self, ctx: GenerationContext) -> Dict[ArtifactKind, ParsedArtifact]:
		tasks = {}
		for step, kind in enumerate(_KIND_ORDER, start=1):
			logger.info("[%d/3] Generating %s", step, kind.value)
			tasks[asyncio.ensure_future(self.generator.generate(kind, ctx))] = kind
		try:
			done, pending = await asyncio.wait(
				tasks, timeout=self.deadline_seconds, return_when=asyncio.FIRST_EXCEPTION
			)
		finally:
			outstanding = [t for t in tasks if not t.done()]
			for t in outstanding:
				t.cancel()
			# Late results are dropped here and never reach persistence
			if outstanding:
				await asyncio.gather(*outstanding, return_exceptions=True)

		failures = {tasks[t]: t.exception() for t in done if not t.cancelled() and t.exception() is not None}
		if failures:
			kind = next(k for k in _KIND_ORDER if k in failures)
			exc = failures[kind]
			logger.error("Generation of %s failed: %s", kind.value, exc)
			raise GenerationFailed(f"{kind.value}: {exc}", kind=kind.value) from exc
		if pending:
			missing = ", ".join(tasks[t].value for t in pending)
			logger.error("Generation deadline of %ss expired waiting for %s", self.deadline_seconds, missing)
			raise GenerationFailed(f"deadline expired before {missing} was ready")
		return {tasks[t]: t.result() for t in done}

	def _load_resources(self, teacher_id: str, resource_ids: Sequence[int]) -> List[Resource]:
		if not resource_ids:
			return []
		wanted = set(resource_ids)
		found = self.db.execute(
			select(Resource).where(Resource.id.in_(wanted), Resource.teacher_id == teacher_id)
		).scalars().all()
		missing = wanted - {r.id for r in found}
		if missing:
			raise NotFound("Resource", sorted(missing)[0])
		return list(found)

	def _persist(
		self,
		teacher_id: str,
		org_id: str,
		topic_id: str,
		ctx: GenerationContext,
		artifacts: Dict[ArtifactKind, ParsedArtifact],
		status: str,
		resource_ids: Sequence[int],
	) -> LessonBundle:
		teacher_note = artifacts[ArtifactKind.teacher_note]
		learner_note = artifacts[ArtifactKind.learner_note]
		quiz_artifact = artifacts[ArtifactKind.quiz]
		resources = self._load_resources(teacher_id, resource_ids)
		db = self.db
		try:
			with transaction(db):
				lesson = LessonNote(
					teacher_id=teacher_id,
					org_id=org_id,
					topic_id=topic_id,
					content=teacher_note.content,
					ai_provider=teacher_note.provider,
					ai_model=teacher_note.model,
					ai_generated_at=teacher_note.generated_at,
				)
				db.add(lesson)
				db.flush()

				learner = LearnerNote(
					author_id=teacher_id,
					org_id=org_id,
					topic_id=topic_id,
					content=learner_note.content,
					status="published" if status == "published" else "draft",
					ai_provider=learner_note.provider,
					ai_model=learner_note.model,
					ai_generated_at=learner_note.generated_at,
				)
				db.add(learner)
				db.flush()

				quiz = Quiz(
					title=bundle_title(ctx),
					subject=ctx.subject_name,
					teacher_id=teacher_id,
					org_id=org_id,
					ai_provider=quiz_artifact.provider,
					ai_model=quiz_artifact.model,
					ai_generated_at=quiz_artifact.generated_at,
				)
				db.add(quiz)
				db.flush()

				questions = add_quiz_questions(db, quiz, quiz_artifact.quiz.questions)

				bundle = LessonBundle(
					teacher_id=teacher_id,
					org_id=org_id,
					topic_id=topic_id,
					title=bundle_title(ctx),
					description=f"Generated for {ctx.school}, Term {ctx.term}, Week {ctx.week}",
					status=status,
					tags=bundle_tags(ctx),
					lesson_note_id=lesson.id,
					learner_note_id=learner.id,
					quiz_id=quiz.id,
					generation_context=ctx.snapshot(),
					ai_provider=teacher_note.provider,
					ai_model=teacher_note.model,
					ai_generated_at=teacher_note.generated_at,
					resources=resources,
				)
				db.add(bundle)
				db.flush()
		except SQLAlchemyError as exc:
			logger.exception("Bundle persistence failed for teacher %s; transaction rolled back", teacher_id)
			raise PersistenceFailed(str(exc)) from exc

		logger.info(
			"Bundle %s created: lesson_note=%s learner_note=%s quiz=%s (%d questions)",
			bundle.id, lesson.id, learner.id, quiz.id, len(questions),
		)
		return bundle
