"""
Playback Controller
===================

Owns the single output device session and at most one sounding source.

States: Idle, Playing(id).

- ``play(id)`` from Idle synthesizes, decodes and starts playback.
- ``play(id)`` with the id that is already playing (or loading) stops it.
- ``play(other)`` stops the current source first, then starts ``other``.
- Natural end of a source returns to Idle.

The output device is created lazily on first use through the injected
factory and reused afterwards. A suspended device is resumed before playback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .audio.codec import decode_pcm16_base64
from .audio.devices import OutputDevice, PlaybackHandle
from .errors import CoachError, PlaybackError
from .speech import SpeechSynthesisClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackState:
	playing_id: Optional[str] = None
	# True when the last play request ended without audio from the synthesizer
	no_audio: bool = False

	@property
	def is_playing(self) -> bool:
		return self.playing_id is not None


class _Session:
	def __init__(self, line_id: str) -> None:
		self.line_id = line_id
		self.handle: Optional[PlaybackHandle] = None


class PlaybackController:
	def __init__(
		self,
		synthesizer: SpeechSynthesisClient,
		device_factory: Callable[[], OutputDevice],
		*,
		on_change: Optional[Callable[[PlaybackState], None]] = None,
	) -> None:
		self._synthesizer = synthesizer
		self._device_factory = device_factory
		self._device: Optional[OutputDevice] = None
		self._device_lock = asyncio.Lock()
		self._session: Optional[_Session] = None
		self._on_change = on_change

	@property
	def state(self) -> PlaybackState:
		return PlaybackState(playing_id=self._session.line_id if self._session else None)

	async def _ensure_device(self) -> OutputDevice:
		async with self._device_lock:
			if self._device is None:
				try:
					self._device = self._device_factory()
				except (ImportError, OSError) as exc:
					raise PlaybackError(f"No audio output available: {exc}") from exc
			if self._device.state == "suspended":
				await self._device.resume()
			return self._device

	def _stop_current(self) -> Optional[str]:
		session, self._session = self._session, None
		if session is None:
			return None
		if session.handle is not None:
			try:
				session.handle.stop()
			except Exception as exc:
				# Source may already have finished
				logger.debug("Ignoring stop error for %s: %s", session.line_id, exc)
		return session.line_id

	def stop(self) -> PlaybackState:
		if self._stop_current() is not None:
			self._notify()
		return self.state

	async def play(self, line_id: str, text: str) -> PlaybackState:
		previous = self._stop_current()
		if previous == line_id:
			self._notify()
			return self.state

		session = _Session(line_id)
		self._session = session
		self._notify()
		started = False
		try:
			audio = await self._synthesizer.synthesize(text)
			if self._session is not session:
				return self.state
			if audio is None:
				self._session = None
				self._notify()
				return PlaybackState(no_audio=True)
			buffer = decode_pcm16_base64(audio, self._synthesizer.sample_rate, self._synthesizer.channels)
			device = await self._ensure_device()
			if self._session is not session:
				return self.state
			session.handle = device.start(buffer, lambda: self._on_ended(session))
			started = True
		except CoachError as exc:
			logger.error("Playback of %s failed: %s", line_id, exc)
			if isinstance(exc, PlaybackError):
				raise
			raise PlaybackError(str(exc), user_message=exc.user_message) from exc
		except Exception as exc:
			logger.exception("Playback of %s failed unexpectedly", line_id)
			raise PlaybackError(f"Playback of {line_id} failed: {exc}") from exc
		finally:
			# Runs on cancellation too
			if not started and self._session is session:
				self._session = None
				self._notify()
		logger.debug("Playing %s (%.2fs)", line_id, buffer.duration_seconds)
		return self.state

	def _on_ended(self, session: _Session) -> None:
		if self._session is session:
			self._session = None
			self._notify()

	def _notify(self) -> None:
		if self._on_change is not None:
			self._on_change(self.state)
