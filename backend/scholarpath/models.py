from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


BUNDLE_STATUSES = ("draft", "published", "archived")


bundle_resources = Table(
	"bundle_resources",
	Base.metadata,
	Column("bundle_id", Integer, ForeignKey("lesson_bundles.id", ondelete="CASCADE"), primary_key=True),
	Column("resource_id", Integer, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
)


class LessonNote(Base):
	__tablename__ = "lesson_notes"
	id = Column(Integer, primary_key=True)
	teacher_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=False, index=True)
	topic_id = Column(String(64), nullable=False, index=True)
	content = Column(Text, nullable=False)
	ai_provider = Column(String(64), nullable=True)
	ai_model = Column(String(128), nullable=True)
	ai_generated_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LearnerNote(Base):
	__tablename__ = "learner_notes"
	id = Column(Integer, primary_key=True)
	author_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=False, index=True)
	topic_id = Column(String(64), nullable=False, index=True)
	content = Column(Text, nullable=False)
	status = Column(String(16), default="draft", nullable=False)
	ai_provider = Column(String(64), nullable=True)
	ai_model = Column(String(128), nullable=True)
	ai_generated_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(Integer, primary_key=True)
	title = Column(String(256), nullable=False)
	subject = Column(String(128), nullable=False, index=True)
	teacher_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=True, index=True)
	ai_provider = Column(String(64), nullable=True)
	ai_model = Column(String(128), nullable=True)
	ai_generated_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	questions = relationship("Question", order_by="Question.position", lazy="selectin")


class Question(Base):
	__tablename__ = "questions"
	id = Column(Integer, primary_key=True)
	quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)
	position = Column(Integer, default=0, nullable=False)
	section = Column(String(32), default="Section A", nullable=False)
	text = Column(Text, nullable=False)
	explanation = Column(Text, nullable=True)
	# NULL on rows written before the column existed
	question_type = Column(String(32), nullable=True)
	reference_answer = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	options = relationship("Option", order_by="Option.position", lazy="selectin")


class Option(Base):
	__tablename__ = "options"
	id = Column(Integer, primary_key=True)
	question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
	position = Column(Integer, default=0, nullable=False)
	text = Column(Text, nullable=False)
	is_correct = Column(Boolean, default=False, nullable=False)


class Resource(Base):
	__tablename__ = "resources"
	id = Column(Integer, primary_key=True)
	teacher_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=True, index=True)
	topic_id = Column(String(64), nullable=False, index=True)
	file_name = Column(String(256), nullable=False)
	file_path = Column(String(512), nullable=False)
	file_type = Column(String(64), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LessonBundle(Base):
	__tablename__ = "lesson_bundles"
	id = Column(Integer, primary_key=True)
	teacher_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=False, index=True)
	topic_id = Column(String(64), nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	status = Column(String(16), default="draft", nullable=False, index=True)
	tags = Column(JSON, default=list, nullable=False)
	# Checked at commit so a cascade can remove children before the bundle row
	lesson_note_id = Column(Integer, ForeignKey("lesson_notes.id", deferrable=True, initially="DEFERRED"), nullable=False)
	learner_note_id = Column(Integer, ForeignKey("learner_notes.id", deferrable=True, initially="DEFERRED"), nullable=False)
	quiz_id = Column(Integer, ForeignKey("quizzes.id", deferrable=True, initially="DEFERRED"), nullable=False)
	# Snapshot of the values used to prompt the provider
	generation_context = Column(JSON, default=dict, nullable=False)
	ai_provider = Column(String(64), nullable=True)
	ai_model = Column(String(128), nullable=True)
	ai_generated_at = Column(DateTime, nullable=True)
	usage_count = Column(Integer, default=0, nullable=False)
	last_used_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	lesson_note = relationship("LessonNote")
	learner_note = relationship("LearnerNote")
	quiz = relationship("Quiz")
	resources = relationship("Resource", secondary=bundle_resources, passive_deletes=True)


class QuizAttempt(Base):
	__tablename__ = "quiz_attempts"
	id = Column(Integer, primary_key=True)
	# Attempts are history: they keep the quiz id even after the quiz is deleted
	quiz_id = Column(Integer, nullable=False, index=True)
	student_id = Column(String(64), nullable=False, index=True)
	org_id = Column(String(64), nullable=True, index=True)
	answers = Column(JSON, default=dict, nullable=False)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Badge(Base):
	__tablename__ = "badges"
	id = Column(Integer, primary_key=True)
	name = Column(String(128), unique=True, nullable=False)
	description = Column(Text, nullable=False)
	icon = Column(String(256), nullable=False)


class StudentBadge(Base):
	__tablename__ = "student_badges"
	__table_args__ = (UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),)
	id = Column(Integer, primary_key=True)
	student_id = Column(String(64), nullable=False, index=True)
	badge_id = Column(Integer, ForeignKey("badges.id"), nullable=False, index=True)
	awarded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	badge = relationship("Badge", lazy="joined")


class NoteView(Base):
	__tablename__ = "note_views"
	id = Column(Integer, primary_key=True)
	note_id = Column(Integer, nullable=False, index=True)
	student_id = Column(String(64), nullable=False, index=True)
	teacher_id = Column(String(64), nullable=False)
	org_id = Column(String(64), nullable=True, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
