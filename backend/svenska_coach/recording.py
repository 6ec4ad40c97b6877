"""
Recording Controller
====================

States: Idle, Recording, Processing.

``start`` acquires the microphone, ``stop`` releases it, packages the
captured chunks into one blob and hands it to the evaluation client. While
recording, an elapsed-seconds counter ticks once per second for display.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .audio.codec import blob_to_base64
from .audio.devices import InputStream, Microphone
from .errors import CoachError, EvaluationError, MicrophonePermissionError
from .schemas import EvaluationResult
from .speech import SpeechEvaluationClient

logger = logging.getLogger(__name__)


class RecordingPhase(str, Enum):
	IDLE = "idle"
	RECORDING = "recording"
	PROCESSING = "processing"


@dataclass(frozen=True)
class RecordingState:
	phase: RecordingPhase = RecordingPhase.IDLE
	elapsed_seconds: int = 0


class RecordingController:
	def __init__(
		self,
		evaluator: SpeechEvaluationClient,
		microphone_factory: Callable[[], Microphone],
		*,
		tick_seconds: float = 1.0,
	) -> None:
		self._evaluator = evaluator
		self._microphone_factory = microphone_factory
		self._microphone: Optional[Microphone] = None
		self._tick_seconds = tick_seconds
		self._phase = RecordingPhase.IDLE
		self._elapsed = 0
		self._stream: Optional[InputStream] = None
		self._chunks: List[bytes] = []
		self._ticker: Optional[asyncio.Task] = None
		self.last_result: Optional[EvaluationResult] = None

	@property
	def state(self) -> RecordingState:
		return RecordingState(phase=self._phase, elapsed_seconds=self._elapsed)

	def _get_microphone(self) -> Microphone:
		if self._microphone is None:
			try:
				self._microphone = self._microphone_factory()
			except (ImportError, OSError) as exc:
				raise MicrophonePermissionError(f"No microphone available: {exc}") from exc
		return self._microphone

	async def start(self) -> RecordingState:
		if self._phase is not RecordingPhase.IDLE:
			return self.state
		self.last_result = None
		microphone = self._get_microphone()
		chunks: List[bytes] = []
		# Raises MicrophonePermissionError and leaves the controller idle
		self._stream = await microphone.open(chunks.append)
		self._chunks = chunks
		self._elapsed = 0
		self._phase = RecordingPhase.RECORDING
		self._ticker = asyncio.create_task(self._tick())
		logger.info("Recording started")
		return self.state

	async def _tick(self) -> None:
		while True:
			await asyncio.sleep(self._tick_seconds)
			self._elapsed += 1

	async def _stop_ticker(self) -> None:
		ticker, self._ticker = self._ticker, None
		if ticker is not None:
			ticker.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await ticker
		self._elapsed = 0

	def _release_stream(self) -> None:
		stream, self._stream = self._stream, None
		if stream is not None:
			stream.close()

	async def stop(self, topic: str) -> Optional[EvaluationResult]:
		"""Finish the recording and evaluate it. A no-op unless recording."""
		if self._phase is not RecordingPhase.RECORDING:
			return None
		self._phase = RecordingPhase.PROCESSING
		await self._stop_ticker()
		chunks, self._chunks = self._chunks, []
		try:
			self._release_stream()
			blob = self._get_microphone().encode(chunks)
			audio_base64 = await blob_to_base64(blob)
			result = await self._evaluator.evaluate(
				audio_base64,
				topic,
				mime_type=self._get_microphone().mime_type,
			)
		except CoachError:
			raise
		except Exception as exc:
			logger.exception("Could not package the recording for evaluation")
			raise EvaluationError(f"Recording could not be processed: {exc}") from exc
		finally:
			self._phase = RecordingPhase.IDLE
		self.last_result = result
		return result

	async def close(self) -> None:
		await self._stop_ticker()
		self._release_stream()
		self._chunks = []
		self._phase = RecordingPhase.IDLE
