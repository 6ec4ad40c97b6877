"""
Practice session state and latest-request-wins bookkeeping.

``PracticeSession`` is what the HTTP layer talks to: it owns the clients and
the two audio controllers and keeps the state a screen renders (current
lesson, last evaluation, one error banner). Lesson and evaluation requests
go through a ``RequestGate`` so that a newer request cancels an older one and
only the newest result is ever applied.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, Optional, TypeVar

from pydantic import BaseModel

from .audio.codec import Blob, blob_to_base64
from .audio.devices import SoundDeviceMicrophone, SoundDeviceOutput, parse_device
from .errors import CoachError, EvaluationError, SupersededError
from .gemini_client import GeminiClient
from .lesson import LessonClient
from .playback import PlaybackController, PlaybackState
from .recording import RecordingController, RecordingPhase, RecordingState
from .schemas import CoachRequest, EvaluationResult, LessonDocument
from .settings import Settings, settings as default_settings
from .speech import SpeechEvaluationClient, SpeechSynthesisClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestGate:
	"""One in-flight task per channel; starting a new one cancels the old."""

	def __init__(self) -> None:
		self._tasks: Dict[str, asyncio.Task] = {}

	def in_flight(self, channel: str) -> bool:
		task = self._tasks.get(channel)
		return task is not None and not task.done()

	async def run(self, channel: str, coro: Awaitable[T]) -> T:
		previous = self._tasks.get(channel)
		if previous is not None and not previous.done():
			logger.info("Cancelling superseded %s request", channel)
			previous.cancel()
		task = asyncio.ensure_future(coro)
		self._tasks[channel] = task
		try:
			return await task
		except asyncio.CancelledError:
			# Cancelled by a newer request rather than by our own caller
			if task.cancelled() and self._tasks.get(channel) is not task:
				raise SupersededError(f"{channel} request superseded") from None
			raise
		finally:
			if self._tasks.get(channel) is task:
				del self._tasks[channel]

	async def cancel_all(self) -> None:
		tasks = [t for t in self._tasks.values() if not t.done()]
		self._tasks.clear()
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)


class SessionSnapshot(BaseModel):
	lesson: Optional[LessonDocument] = None
	evaluation: Optional[EvaluationResult] = None
	playing_id: Optional[str] = None
	recording_phase: RecordingPhase = RecordingPhase.IDLE
	elapsed_seconds: int = 0
	lesson_loading: bool = False
	error: Optional[str] = None


class PracticeSession:
	def __init__(
		self,
		lessons: LessonClient,
		synthesizer: SpeechSynthesisClient,
		evaluator: SpeechEvaluationClient,
		playback: PlaybackController,
		recording: RecordingController,
		*,
		gemini: Optional[GeminiClient] = None,
	) -> None:
		self.lessons = lessons
		self.synthesizer = synthesizer
		self.evaluator = evaluator
		self._gemini = gemini
		self.playback = playback
		self.recording = recording
		self.gate = RequestGate()
		self.lesson: Optional[LessonDocument] = None
		self.evaluation: Optional[EvaluationResult] = None
		self.error: Optional[str] = None

	def _fail(self, exc: CoachError) -> None:
		if not isinstance(exc, SupersededError):
			self.error = exc.user_message

	async def generate_lesson(self, request: CoachRequest) -> LessonDocument:
		self.error = None
		try:
			lesson = await self.gate.run("lesson", self.lessons.generate_lesson(request))
		except CoachError as exc:
			self._fail(exc)
			raise
		self.lesson = lesson
		return lesson

	def clear_lesson(self) -> None:
		self.lesson = None

	async def play(self, line_id: str, text: str) -> PlaybackState:
		self.error = None
		try:
			return await self.playback.play(line_id, text)
		except CoachError as exc:
			self._fail(exc)
			raise

	async def start_recording(self) -> RecordingState:
		self.error = None
		self.evaluation = None
		try:
			return await self.recording.start()
		except CoachError as exc:
			self._fail(exc)
			raise

	async def stop_recording(self, topic: str) -> Optional[EvaluationResult]:
		if self.recording.state.phase is not RecordingPhase.RECORDING:
			return None
		self.error = None
		try:
			result = await self.gate.run("evaluation", self.recording.stop(topic))
		except CoachError as exc:
			self._fail(exc)
			raise
		if result is not None:
			self.evaluation = result
		return result

	def dismiss_error(self) -> None:
		self.error = None

	def snapshot(self) -> SessionSnapshot:
		recording = self.recording.state
		return SessionSnapshot(
			lesson=self.lesson,
			evaluation=self.evaluation,
			playing_id=self.playback.state.playing_id,
			recording_phase=recording.phase,
			elapsed_seconds=recording.elapsed_seconds,
			lesson_loading=self.gate.in_flight("lesson"),
			error=self.error,
		)

	async def evaluate_upload(self, blob: Blob, topic: str, *, mime_type: str) -> EvaluationResult:
		"""Evaluate a recording captured elsewhere (e.g. by the browser)."""
		self.error = None

		async def _evaluate() -> EvaluationResult:
			try:
				audio_base64 = await blob_to_base64(blob)
			except (OSError, TypeError) as exc:
				raise EvaluationError(f"Recording could not be read: {exc}") from exc
			return await self.evaluator.evaluate(audio_base64, topic, mime_type=mime_type)

		try:
			result = await self.gate.run("evaluation", _evaluate())
		except CoachError as exc:
			self._fail(exc)
			raise
		self.evaluation = result
		return result

	async def aclose(self) -> None:
		await self.gate.cancel_all()
		self.playback.stop()
		await self.recording.close()
		if self._gemini is not None:
			await self._gemini.aclose()


def build_practice_session(config: Optional[Settings] = None) -> PracticeSession:
	"""Wire the remote clients and the local sound card into one session."""
	config = config or default_settings
	gemini = GeminiClient(config=config)
	synthesizer = SpeechSynthesisClient(gemini, config=config)
	evaluator = SpeechEvaluationClient(gemini, config=config)
	playback = PlaybackController(
		synthesizer,
		lambda: SoundDeviceOutput(
			config.tts_sample_rate,
			config.tts_channels,
			device=parse_device(config.output_device),
		),
	)
	recording = RecordingController(
		evaluator,
		lambda: SoundDeviceMicrophone(
			config.recording_sample_rate,
			device=parse_device(config.input_device),
		),
	)
	return PracticeSession(
		LessonClient(gemini, config=config),
		synthesizer,
		evaluator,
		playback,
		recording,
		gemini=gemini,
	)
