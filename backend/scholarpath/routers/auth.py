from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

# Tokens come from the external auth service; this service never issues them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

ROLES = ("teacher", "student", "admin")


class CurrentUser(BaseModel):
	id: str
	role: str
	org_id: Optional[str] = None

	@property
	def is_admin(self) -> bool:
		return self.role == "admin"


def decode_token(token: str) -> CurrentUser:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	user_id: str | None = payload.get("sub")
	role: str | None = payload.get("role")
	if not user_id or role not in ROLES:
		raise credentials_exception
	return CurrentUser(id=user_id, role=role, org_id=payload.get("org"))


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
	return decode_token(token)


def require_role(*roles: str):
	def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
		if user.role not in roles:
			raise HTTPException(status_code=403, detail="Not allowed for this role")
		return user
	return dependency


require_teacher = require_role("teacher", "admin")
require_student = require_role("student")


@router.get("/me", response_model=CurrentUser)
async def me(user: CurrentUser = Depends(get_current_user)):
	return user
