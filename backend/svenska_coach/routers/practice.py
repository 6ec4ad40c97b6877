"""
Practice on the local sound card: play dialogue lines through the speakers
and record the learner through the microphone of the machine running the app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..errors import CoachError
from ..playback import PlaybackState
from ..recording import RecordingState
from ..schemas import EvaluationResult, PlayRequest, StopRecordingRequest
from ..session import PracticeSession
from .deps import get_practice_session, to_http_exception

router = APIRouter(prefix="/practice", tags=["practice"])


@router.post("/play", response_model=PlaybackState)
async def play(req: PlayRequest, session: PracticeSession = Depends(get_practice_session)):
	try:
		return await session.play(req.id, req.text)
	except CoachError as exc:
		raise to_http_exception(exc)


@router.post("/stop", response_model=PlaybackState)
def stop(session: PracticeSession = Depends(get_practice_session)):
	return session.playback.stop()


@router.post("/record/start", response_model=RecordingState)
async def start_recording(session: PracticeSession = Depends(get_practice_session)):
	try:
		return await session.start_recording()
	except CoachError as exc:
		raise to_http_exception(exc)


@router.post("/record/stop", response_model=Optional[EvaluationResult])
async def stop_recording(req: StopRecordingRequest, session: PracticeSession = Depends(get_practice_session)):
	"""Finish the recording and evaluate it; null when nothing was recording."""
	try:
		return await session.stop_recording(req.topic)
	except CoachError as exc:
		raise to_http_exception(exc)
