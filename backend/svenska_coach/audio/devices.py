"""Local audio output and microphone backends built on sounddevice."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from typing import Callable, List, Optional, Protocol, Union

import numpy as np

from ..errors import MicrophonePermissionError, PlaybackError
from .codec import AudioBuffer

logger = logging.getLogger(__name__)

DeviceId = Union[int, str, None]


class PlaybackHandle(Protocol):
	def stop(self) -> None: ...


class OutputDevice(Protocol):
	"""An output session. ``state`` is "running", "suspended" or "closed"."""

	state: str

	async def resume(self) -> None: ...

	def start(self, buffer: AudioBuffer, on_ended: Callable[[], None]) -> PlaybackHandle: ...


class InputStream(Protocol):
	def close(self) -> None: ...


class Microphone(Protocol):
	mime_type: str

	async def open(self, on_chunk: Callable[[bytes], None]) -> InputStream: ...

	def encode(self, chunks: List[bytes]) -> bytes: ...


def parse_device(value: Optional[str]) -> DeviceId:
	if value is None or not value.strip():
		return None
	value = value.strip()
	return int(value) if value.isdigit() else value


# ============================================================================
# OUTPUT
# ============================================================================

class _StreamPlayback:
	"""One buffer streamed through a callback ``OutputStream``."""

	def __init__(self, sd, buffer: AudioBuffer, device: DeviceId, loop: asyncio.AbstractEventLoop, on_ended: Callable[[], None]) -> None:
		self._samples = buffer.samples
		self._position = 0
		self._lock = threading.Lock()
		self._stopped = False
		self._loop = loop
		self._on_ended = on_ended
		self._stream = sd.OutputStream(
			samplerate=buffer.sample_rate,
			channels=buffer.channels,
			dtype="float32",
			device=device,
			callback=self._callback,
			finished_callback=self._finished,
		)
		self._sd = sd

	def begin(self) -> None:
		self._stream.start()

	def _callback(self, outdata, frames, time, status):  # pragma: no cover - realtime
		if status:
			logger.debug("Output stream status: %s", status)
		with self._lock:
			chunk = self._samples[self._position:self._position + frames]
			self._position += len(chunk)
		outdata[:len(chunk)] = chunk
		if len(chunk) < frames:
			outdata[len(chunk):] = 0
			raise self._sd.CallbackStop()

	def _finished(self) -> None:  # pragma: no cover - realtime
		if not self._stopped:
			self._loop.call_soon_threadsafe(self._complete)

	def _complete(self) -> None:  # pragma: no cover - realtime
		self._stream.close()
		self._on_ended()

	def stop(self) -> None:
		self._stopped = True
		self._stream.abort()
		self._stream.close()


class SoundDeviceOutput:
	"""Output session on the local sound card.

	Starts suspended; ``resume()`` checks that the device accepts float32 at the
	requested rate before anything is played.
	"""

	def __init__(self, sample_rate: int, channels: int, device: DeviceId = None, *, backend=None) -> None:
		if backend is None:
			import sounddevice as backend

		self._sd = backend
		self.sample_rate = sample_rate
		self.channels = channels
		self.device = device
		self.state = "suspended"

	async def resume(self) -> None:
		try:
			await asyncio.to_thread(
				self._sd.check_output_settings,
				device=self.device,
				channels=self.channels,
				dtype="float32",
				samplerate=self.sample_rate,
			)
		except Exception as err:
			raise PlaybackError(f"Output device unavailable: {err}") from err
		self.state = "running"

	def start(self, buffer: AudioBuffer, on_ended: Callable[[], None]) -> PlaybackHandle:
		if self.state != "running":
			raise PlaybackError(f"Output device is {self.state}")
		try:
			playback = _StreamPlayback(self._sd, buffer, self.device, asyncio.get_running_loop(), on_ended)
			playback.begin()
		except self._sd.PortAudioError as err:
			raise PlaybackError(f"Could not start playback: {err}") from err
		return playback


# ============================================================================
# INPUT
# ============================================================================

class _CaptureStream:
	def __init__(self, stream) -> None:
		self._stream = stream

	def close(self) -> None:
		self._stream.stop()
		self._stream.close()


class SoundDeviceMicrophone:
	"""Captures mono int16 PCM and packages it as a WAV blob."""

	mime_type = "audio/wav"

	def __init__(self, sample_rate: int = 16000, device: DeviceId = None, *, backend=None) -> None:
		if backend is None:
			import sounddevice as backend

		self._sd = backend
		self.sample_rate = sample_rate
		self.device = device

	async def open(self, on_chunk: Callable[[bytes], None]) -> InputStream:
		loop = asyncio.get_running_loop()

		def _callback(indata, frames, time, status):  # pragma: no cover - realtime
			if status:
				logger.debug("Recorder status: %s", status)
			loop.call_soon_threadsafe(on_chunk, indata.tobytes())

		try:
			stream = self._sd.InputStream(
				samplerate=self.sample_rate,
				channels=1,
				dtype="int16",
				device=self.device,
				callback=_callback,
			)
		except self._sd.PortAudioError as err:
			raise MicrophonePermissionError(f"Microphone unavailable: {err}") from err
		try:
			stream.start()
		except self._sd.PortAudioError as err:
			stream.close()
			raise MicrophonePermissionError(f"Microphone unavailable: {err}") from err
		return _CaptureStream(stream)

	def encode(self, chunks: List[bytes]) -> bytes:
		import soundfile as sf

		data = b"".join(chunks)
		pcm = np.frombuffer(data, dtype="<i2") if data else np.zeros(0, dtype=np.int16)
		out = io.BytesIO()
		sf.write(out, pcm, self.sample_rate, format="WAV", subtype="PCM_16")
		return out.getvalue()
