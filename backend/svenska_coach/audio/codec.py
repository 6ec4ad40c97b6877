"""
Conversions between the wire formats of the speech APIs and playable audio.

The synthesis endpoint returns base64 little-endian PCM16; recordings go the
other way, from a captured blob to a base64 upload payload.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import numpy as np

from ..errors import DecodeError

PCM16_SCALE = 32768.0


@dataclass(frozen=True)
class AudioBuffer:
	"""Decoded float32 audio, shape ``(frames, channels)``."""

	samples: np.ndarray
	sample_rate: int

	@property
	def channels(self) -> int:
		return int(self.samples.shape[1])

	@property
	def frame_count(self) -> int:
		return int(self.samples.shape[0])

	@property
	def duration_seconds(self) -> float:
		return self.frame_count / float(self.sample_rate)

	def channel_data(self, channel: int) -> np.ndarray:
		return self.samples[:, channel]


def decode_base64_to_bytes(data: str) -> bytes:
	try:
		return base64.b64decode(data, validate=True)
	except (binascii.Error, ValueError) as err:
		raise DecodeError(f"Malformed base64 audio payload: {err}") from err


def pcm16_to_audio_buffer(data: bytes, sample_rate: int, channels: int) -> AudioBuffer:
	"""Interpret ``data`` as interleaved signed 16-bit little-endian samples.

	Trailing bytes that do not make up a whole frame are dropped.
	"""
	if channels < 1:
		raise DecodeError(f"channel count must be positive, got {channels}")
	if sample_rate <= 0:
		raise DecodeError(f"sample rate must be positive, got {sample_rate}")
	frame_bytes = 2 * channels
	frames = len(data) // frame_bytes
	if frames == 0:
		return AudioBuffer(samples=np.zeros((0, channels), dtype=np.float32), sample_rate=sample_rate)
	pcm = np.frombuffer(data, dtype="<i2", count=frames * channels)
	samples = (pcm.astype(np.float32) / PCM16_SCALE).reshape(frames, channels)
	return AudioBuffer(samples=samples, sample_rate=sample_rate)


def decode_pcm16_base64(data: str, sample_rate: int, channels: int) -> AudioBuffer:
	return pcm16_to_audio_buffer(decode_base64_to_bytes(data), sample_rate, channels)


Blob = Union[bytes, bytearray, memoryview, Path, Any]


async def blob_to_base64(blob: Blob) -> str:
	"""Base64-encode a recording without blocking the event loop.

	Accepts raw bytes, a file path, or an object with an async ``read()``
	(e.g. FastAPI's ``UploadFile``).
	"""
	if isinstance(blob, (bytes, bytearray, memoryview)):
		raw = bytes(blob)
	elif isinstance(blob, Path):
		raw = await asyncio.to_thread(blob.read_bytes)
	elif inspect.iscoroutinefunction(getattr(blob, "read", None)):
		raw = await blob.read()
	elif hasattr(blob, "read"):
		raw = await asyncio.to_thread(blob.read)
	else:
		raise TypeError(f"Unsupported blob type: {type(blob).__name__}")
	return await asyncio.to_thread(lambda: base64.b64encode(raw).decode("ascii"))
