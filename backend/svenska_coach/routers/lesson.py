from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..errors import CoachError
from ..schemas import CoachRequest, LessonDocument
from ..session import PracticeSession, SessionSnapshot
from .deps import get_practice_session, to_http_exception

router = APIRouter(tags=["lesson"])


@router.post("/lesson", response_model=LessonDocument)
async def generate_lesson(req: CoachRequest, session: PracticeSession = Depends(get_practice_session)):
	"""Generate a new lesson, replacing the current one wholesale."""
	try:
		return await session.generate_lesson(req)
	except CoachError as exc:
		raise to_http_exception(exc)


@router.delete("/lesson", status_code=204)
def clear_lesson(session: PracticeSession = Depends(get_practice_session)):
	session.clear_lesson()


@router.get("/session", response_model=SessionSnapshot)
def get_session(session: PracticeSession = Depends(get_practice_session)):
	return session.snapshot()


@router.delete("/session/error", status_code=204)
def dismiss_error(session: PracticeSession = Depends(get_practice_session)):
	session.dismiss_error()
