from __future__ import annotations

from fastapi import HTTPException, Request

from ..errors import (
	CoachError,
	ConfigurationError,
	MicrophonePermissionError,
	RequestTimeoutError,
	SupersededError,
)
from ..session import PracticeSession


def get_practice_session(request: Request) -> PracticeSession:
	return request.app.state.practice


def to_http_exception(exc: CoachError) -> HTTPException:
	"""Map a failed operation to one user-facing error."""
	if isinstance(exc, ConfigurationError):
		status = 503
	elif isinstance(exc, RequestTimeoutError):
		status = 504
	elif isinstance(exc, MicrophonePermissionError):
		status = 403
	elif isinstance(exc, SupersededError):
		status = 409
	else:
		status = 502
	return HTTPException(status_code=status, detail=exc.user_message)
