from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from ..errors import CoachError
from ..schemas import EvaluationResult, SynthesizeRequest, SynthesizeResponse
from ..session import PracticeSession
from ..speech import DEFAULT_RECORDING_MIME
from .deps import get_practice_session, to_http_exception

router = APIRouter(prefix="/speech", tags=["speech"])


@router.post("/synthesize", response_model=SynthesizeResponse, responses={204: {"description": "No audio produced"}})
async def synthesize(req: SynthesizeRequest, session: PracticeSession = Depends(get_practice_session)):
	"""Return base64 PCM16 audio for one line; 204 when the model produced none."""
	try:
		audio = await session.synthesizer.synthesize(req.text)
	except CoachError as exc:
		raise to_http_exception(exc)
	if audio is None:
		return Response(status_code=204)
	return SynthesizeResponse(
		audio_base64=audio,
		sample_rate=session.synthesizer.sample_rate,
		channels=session.synthesizer.channels,
	)


@router.post("/evaluate", response_model=EvaluationResult)
async def evaluate(
	audio: UploadFile = File(...),
	topic: str = Form(..., min_length=1),
	session: PracticeSession = Depends(get_practice_session),
):
	"""Score an uploaded recording against a topic."""
	try:
		return await session.evaluate_upload(
			audio,
			topic,
			mime_type=audio.content_type or DEFAULT_RECORDING_MIME,
		)
	except CoachError as exc:
		raise to_http_exception(exc)
