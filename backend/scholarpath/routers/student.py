from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import AttemptResult, ManualQuestionOut, QuizOut, StudentBadgeOut, SubmitAnswersRequest
from ..services import scoring
from ..services.badges import list_student_badges
from ..services.note_views import record_note_view
from .auth import CurrentUser, require_student

router = APIRouter(prefix="/student", tags=["student"])


@router.get("/quizzes/{quiz_id}", response_model=QuizOut)
def get_quiz(quiz_id: int, user: CurrentUser = Depends(require_student), db: Session = Depends(get_db)):
	return scoring.student_quiz_view(scoring.get_quiz(db, quiz_id))


@router.post("/quizzes/{quiz_id}/attempts", response_model=AttemptResult, status_code=201)
def submit_attempt(
	quiz_id: int,
	req: SubmitAnswersRequest,
	user: CurrentUser = Depends(require_student),
	db: Session = Depends(get_db),
):
	attempt, result, awarded = scoring.submit_auto_graded(db, quiz_id, user.id, req.answers, org_id=user.org_id)
	_, manual = scoring.classify(scoring.get_quiz(db, quiz_id))
	return AttemptResult(attempt_id=attempt.id, score=result, awarded_badges=awarded, manual_questions=len(manual))


@router.get("/quizzes/{quiz_id}/manual", response_model=List[ManualQuestionOut])
def manual_questions(quiz_id: int, user: CurrentUser = Depends(require_student), db: Session = Depends(get_db)):
	return scoring.get_manual_questions(db, quiz_id, user.id)


@router.get("/badges", response_model=List[StudentBadgeOut])
def my_badges(user: CurrentUser = Depends(require_student), db: Session = Depends(get_db)):
	return [
		StudentBadgeOut(name=sb.badge.name, description=sb.badge.description, icon=sb.badge.icon, awarded_at=sb.awarded_at)
		for sb in list_student_badges(db, user.id)
	]


@router.post("/notes/{note_id}/views")
def view_note(note_id: int, user: CurrentUser = Depends(require_student), db: Session = Depends(get_db)):
	return {"recorded": record_note_view(db, note_id, user.id, org_id=user.org_id)}
