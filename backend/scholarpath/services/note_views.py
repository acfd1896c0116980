from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import NotFound
from ..models import LearnerNote, NoteView
from ..settings import settings

logger = logging.getLogger(__name__)


def record_note_view(
	db: Session,
	note_id: int,
	student_id: str,
	*,
	org_id: Optional[str] = None,
	cooldown_seconds: Optional[int] = None,
	now: Optional[datetime] = None,
) -> bool:
	"""Log that a student opened a learner note.

	Repeat opens of the same note inside the cooldown window are not logged
	again. Returns True when a view row was written.
	"""
	note = db.get(LearnerNote, note_id)
	if note is None:
		raise NotFound("Note", note_id)
	now = now or datetime.utcnow()
	if cooldown_seconds is None:
		cooldown_seconds = settings.note_view_cooldown_seconds
	since = now - timedelta(seconds=cooldown_seconds)
	recent = db.scalar(
		select(NoteView.id)
		.where(NoteView.note_id == note.id, NoteView.student_id == student_id, NoteView.created_at >= since)
		.limit(1)
	)
	if recent is not None:
		return False
	with transaction(db):
		db.add(NoteView(
			note_id=note.id,
			student_id=student_id,
			teacher_id=note.author_id,
			org_id=org_id or note.org_id,
			created_at=now,
		))
	logger.debug("Note %s viewed by %s", note.id, student_id)
	return True
