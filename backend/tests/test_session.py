import asyncio

import pytest

from conftest import FakeEvaluator, FakeMicrophone, FakeOutputDevice, FakeSynthesizer, sample_lesson
from svenska_coach.errors import (
	EvaluationError,
	LessonEmptyResponseError,
	MicrophonePermissionError,
	SupersededError,
	TransportError,
)
from svenska_coach.playback import PlaybackController
from svenska_coach.recording import RecordingController, RecordingPhase
from svenska_coach.schemas import CoachRequest, LessonDocument, Level
from svenska_coach.session import PracticeSession, RequestGate


class FakeLessons:
	def __init__(self) -> None:
		self.gates = {}
		self.error = None
		self.calls = []

	async def generate_lesson(self, request: CoachRequest) -> LessonDocument:
		self.calls.append(request)
		gate = self.gates.get(request.scenario)
		if gate is not None:
			await gate.wait()
		if self.error is not None:
			raise self.error
		lesson = sample_lesson()
		lesson["culturalTip"] = f"Tip for {request.scenario}"
		return LessonDocument.model_validate(lesson)


def _session(microphone=None):
	synthesizer = FakeSynthesizer()
	evaluator = FakeEvaluator()
	microphone = microphone or FakeMicrophone()
	return PracticeSession(
		FakeLessons(),
		synthesizer,
		evaluator,
		PlaybackController(synthesizer, FakeOutputDevice),
		RecordingController(evaluator, lambda: microphone),
	)


def _request(scenario: str) -> CoachRequest:
	return CoachRequest(scenario=scenario, level=Level.BASIC_LITERACY, keywords="receipt, card")


@pytest.mark.anyio
async def test_gate_cancels_superseded_request():
	gate = RequestGate()
	started = asyncio.Event()
	cancelled = []

	async def slow():
		started.set()
		try:
			await asyncio.sleep(10)
		except asyncio.CancelledError:
			cancelled.append(True)
			raise
		return "old"

	async def fast():
		return "new"

	first = asyncio.create_task(gate.run("lesson", slow()))
	await started.wait()
	assert gate.in_flight("lesson")
	assert await gate.run("lesson", fast()) == "new"
	with pytest.raises(SupersededError):
		await first
	assert cancelled == [True]
	assert not gate.in_flight("lesson")


@pytest.mark.anyio
async def test_gate_channels_are_independent():
	gate = RequestGate()

	async def value(v):
		await asyncio.sleep(0)
		return v

	results = await asyncio.gather(gate.run("lesson", value(1)), gate.run("evaluation", value(2)))
	assert results == [1, 2]


@pytest.mark.anyio
async def test_gate_cancel_all():
	gate = RequestGate()
	task = asyncio.create_task(gate.run("lesson", asyncio.sleep(10)))
	await asyncio.sleep(0)
	await gate.cancel_all()
	with pytest.raises((asyncio.CancelledError, SupersededError)):
		await task


@pytest.mark.anyio
async def test_generate_and_clear_lesson():
	session = _session()
	lesson = await session.generate_lesson(_request("fika"))
	assert session.lesson is lesson
	assert session.snapshot().lesson == lesson
	session.clear_lesson()
	assert session.lesson is None


@pytest.mark.anyio
async def test_only_latest_lesson_is_applied():
	session = _session()
	session.lessons.gates["slow"] = asyncio.Event()
	older = asyncio.create_task(session.generate_lesson(_request("slow")))
	await asyncio.sleep(0)
	assert session.snapshot().lesson_loading

	newer = await session.generate_lesson(_request("fast"))
	session.lessons.gates["slow"].set()
	with pytest.raises(SupersededError):
		await older
	assert session.lesson is newer
	assert session.lesson.cultural_tip == "Tip for fast"
	assert session.error is None


@pytest.mark.anyio
async def test_failure_sets_single_banner_and_new_action_clears_it():
	session = _session()
	session.lessons.error = LessonEmptyResponseError("no content")
	with pytest.raises(LessonEmptyResponseError):
		await session.generate_lesson(_request("fika"))
	assert session.error == LessonEmptyResponseError.user_message
	assert session.lesson is None

	session.lessons.error = None
	await session.generate_lesson(_request("fika"))
	assert session.error is None


@pytest.mark.anyio
async def test_failed_lesson_keeps_previous_lesson():
	session = _session()
	previous = await session.generate_lesson(_request("fika"))
	session.lessons.error = LessonEmptyResponseError("no content")
	with pytest.raises(LessonEmptyResponseError):
		await session.generate_lesson(_request("again"))
	assert session.lesson is previous


@pytest.mark.anyio
async def test_missing_audio_does_not_raise_banner():
	session = _session()
	session.synthesizer.return_none = True
	state = await session.play("line-0", "Hej")
	assert state.no_audio
	assert session.error is None


@pytest.mark.anyio
async def test_playback_failure_sets_banner():
	session = _session()
	session.synthesizer.error = TransportError("offline")
	with pytest.raises(Exception):
		await session.play("line-0", "Hej")
	assert session.error == TransportError.user_message
	session.dismiss_error()
	assert session.error is None


@pytest.mark.anyio
async def test_recording_round_trip_updates_evaluation():
	session = _session()
	await session.start_recording()
	assert session.snapshot().recording_phase is RecordingPhase.RECORDING
	result = await session.stop_recording("weather")
	assert session.evaluation is result
	snapshot = session.snapshot()
	assert snapshot.evaluation == result
	assert snapshot.recording_phase is RecordingPhase.IDLE

	# starting over drops the previous evaluation
	await session.start_recording()
	assert session.evaluation is None
	await session.aclose()


@pytest.mark.anyio
async def test_stop_recording_when_idle_is_noop():
	session = _session()
	assert await session.stop_recording("weather") is None
	assert session.error is None


@pytest.mark.anyio
async def test_microphone_denied_sets_banner():
	session = _session(microphone=FakeMicrophone(deny=True))
	with pytest.raises(MicrophonePermissionError):
		await session.start_recording()
	assert session.error == MicrophonePermissionError.user_message


@pytest.mark.anyio
async def test_evaluate_upload():
	session = _session()
	result = await session.evaluate_upload(b"\x1aE\xdf\xa3", "weather", mime_type="audio/ogg")
	assert session.evaluation is result
	assert session.evaluator.calls[0][2] == "audio/ogg"


@pytest.mark.anyio
async def test_recording_processing_failure_sets_banner():
	microphone = FakeMicrophone()
	microphone.encode_error = ValueError("bad samples")
	session = _session(microphone=microphone)
	await session.start_recording()
	with pytest.raises(EvaluationError):
		await session.stop_recording("weather")
	assert session.error == EvaluationError.user_message
	assert session.evaluation is None
	assert session.snapshot().recording_phase is RecordingPhase.IDLE


@pytest.mark.anyio
async def test_unreadable_upload_sets_banner(tmp_path):
	session = _session()
	with pytest.raises(EvaluationError):
		await session.evaluate_upload(tmp_path / "missing.webm", "weather", mime_type="audio/webm")
	assert session.error == EvaluationError.user_message
	assert session.evaluator.calls == []
