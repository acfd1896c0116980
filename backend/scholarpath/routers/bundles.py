from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..gemini_client import ContentProvider, GeminiClient
from ..models import LessonBundle
from ..schemas import BundleCreateRequest, BundleDetail, BundlePatch, BundleStatus, BundleSummary
from ..services.artifacts import ArtifactGenerator
from ..services.bundles import BundleTransactionCoordinator
from ..services.lifecycle import BundleLifecycleManager, group_quiz_questions
from ..settings import settings
from .auth import CurrentUser, require_teacher

router = APIRouter(prefix="/bundles", tags=["bundles"])


class AttachResourcesRequest(BaseModel):
	resource_ids: List[int]


async def get_content_provider():
	client = GeminiClient()
	try:
		yield client
	finally:
		await client.aclose()


def _detail(bundle: LessonBundle) -> BundleDetail:
	detail = BundleDetail.model_validate(bundle)
	return detail.model_copy(update={"quiz_data": group_quiz_questions(bundle.quiz)})


@router.post("", response_model=BundleDetail, status_code=201)
async def create_bundle(
	req: BundleCreateRequest,
	user: CurrentUser = Depends(require_teacher),
	db: Session = Depends(get_db),
	provider: ContentProvider = Depends(get_content_provider),
):
	if not user.org_id:
		raise HTTPException(status_code=400, detail="Caller has no organization")
	coordinator = BundleTransactionCoordinator(db, ArtifactGenerator(provider))
	bundle = await coordinator.create_bundle(
		user.id,
		user.org_id,
		req.topic_id,
		req.to_context(settings.default_num_questions),
		publish=req.publish,
		resource_ids=req.resource_ids,
	)
	return _detail(bundle)


@router.get("", response_model=List[BundleSummary])
def list_bundles(
	status: Optional[BundleStatus] = None,
	search: Optional[str] = None,
	user: CurrentUser = Depends(require_teacher),
	db: Session = Depends(get_db),
):
	return BundleLifecycleManager(db).list_bundles(user.id, status=status, search=search)


@router.get("/{bundle_id}", response_model=BundleDetail)
def get_bundle(bundle_id: int, user: CurrentUser = Depends(require_teacher), db: Session = Depends(get_db)):
	return _detail(BundleLifecycleManager(db).get(bundle_id, user.id, is_admin=user.is_admin))


@router.patch("/{bundle_id}", response_model=BundleDetail)
def update_bundle(
	bundle_id: int,
	patch: BundlePatch,
	user: CurrentUser = Depends(require_teacher),
	db: Session = Depends(get_db),
):
	return _detail(BundleLifecycleManager(db).update(bundle_id, user.id, patch))


@router.delete("/{bundle_id}", status_code=204)
def delete_bundle(bundle_id: int, user: CurrentUser = Depends(require_teacher), db: Session = Depends(get_db)):
	BundleLifecycleManager(db).delete(bundle_id, user.id)
	return Response(status_code=204)


@router.post("/{bundle_id}/duplicate", response_model=BundleDetail, status_code=201)
def duplicate_bundle(bundle_id: int, user: CurrentUser = Depends(require_teacher), db: Session = Depends(get_db)):
	bundle = BundleLifecycleManager(db).duplicate(bundle_id, user.id, org_id=user.org_id, is_admin=user.is_admin)
	return _detail(bundle)


@router.post("/{bundle_id}/use", response_model=BundleSummary)
def use_bundle(bundle_id: int, user: CurrentUser = Depends(require_teacher), db: Session = Depends(get_db)):
	return BundleLifecycleManager(db).record_usage(bundle_id, user.id)


@router.post("/{bundle_id}/resources", response_model=BundleDetail)
def attach_resources(
	bundle_id: int,
	req: AttachResourcesRequest,
	user: CurrentUser = Depends(require_teacher),
	db: Session = Depends(get_db),
):
	return _detail(BundleLifecycleManager(db).attach_resources(bundle_id, user.id, req.resource_ids))
