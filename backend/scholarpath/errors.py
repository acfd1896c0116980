from __future__ import annotations
from typing import Optional


class ScholarPathError(Exception):
	"""Base for every error the bundle and assessment services raise.

	`public_message` is what a caller may show to a user. The exception's own
	message can carry internal detail (provider text, SQL errors) for logs.
	"""

	status_code = 500
	public_message = "Something went wrong."
	retryable = False

	def __init__(self, message: Optional[str] = None) -> None:
		super().__init__(message or self.public_message)


class ProviderUnavailable(ScholarPathError):
	public_message = "The content provider is unavailable."
	status_code = 502
	retryable = True


class MalformedProviderOutput(ScholarPathError):
	public_message = "The content provider returned content that could not be used."
	status_code = 502
	retryable = True


class GenerationFailed(ScholarPathError):
	status_code = 502
	public_message = "Generation failed, please retry."
	retryable = True

	def __init__(self, message: Optional[str] = None, *, kind: Optional[str] = None) -> None:
		super().__init__(message)
		self.kind = kind


class PersistenceFailed(ScholarPathError):
	status_code = 503
	public_message = "Generation failed, please retry."
	retryable = True


class NotFound(ScholarPathError):
	status_code = 404
	public_message = "Not found."

	def __init__(self, entity: str, entity_id=None) -> None:
		self.entity = entity
		self.entity_id = entity_id
		self.public_message = f"{entity} not found."
		super().__init__(f"{entity} {entity_id} not found" if entity_id is not None else None)


class DeletionFailed(ScholarPathError):
	status_code = 500
	public_message = "Could not delete, nothing was removed."
	retryable = True


class MalformedSubmission(ScholarPathError):
	status_code = 400
	public_message = "The submitted answers do not match this quiz."
