from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import TeacherAnalytics
from ..services.analytics import teacher_analytics
from .auth import CurrentUser, require_teacher

router = APIRouter(prefix="/teacher", tags=["teacher"])


@router.get("/analytics", response_model=TeacherAnalytics)
def analytics(user: CurrentUser = Depends(require_teacher), db: Session = Depends(get_db)):
	return teacher_analytics(db, user.id)
