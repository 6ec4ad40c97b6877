from __future__ import annotations

import asyncio
import base64
import json
import struct
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from svenska_coach.errors import MicrophonePermissionError
from svenska_coach.gemini_client import GeminiClient
from svenska_coach.schemas import EvaluationResult
from svenska_coach.settings import Settings


@pytest.fixture
def anyio_backend():
	return "asyncio"


@pytest.fixture
def config() -> Settings:
	return Settings(_env_file=None, GEMINI_API_KEY="test-key", GEMINI_PROVIDER="ai_studio")


# ============================================================================
# GEMINI FAKES
# ============================================================================

def text_reply(text: str) -> httpx.Response:
	return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def json_reply(obj: Any) -> httpx.Response:
	return text_reply(json.dumps(obj))


def audio_reply(data: str) -> httpx.Response:
	return httpx.Response(
		200,
		json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "audio/L16;rate=24000", "data": data}}]}}]},
	)


def empty_reply() -> httpx.Response:
	return httpx.Response(200, json={"candidates": [{"content": {}, "finishReason": "SAFETY"}]})


class RecordingHandler:
	"""MockTransport handler that records requests and replays canned responses."""

	def __init__(self, *responses: Any) -> None:
		self.responses: List[Any] = list(responses)
		self.requests: List[httpx.Request] = []

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
		if isinstance(response, Exception):
			raise response
		if callable(response):
			return response(request)
		return response

	@property
	def last_json(self) -> Dict[str, Any]:
		return json.loads(self.requests[-1].content)


@pytest.fixture
def make_gemini(config):
	def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GeminiClient:
		return GeminiClient(config=kwargs.pop("config", config), transport=httpx.MockTransport(handler), **kwargs)

	return _make


# ============================================================================
# SAMPLE DATA
# ============================================================================

def pcm16_base64(samples: List[int]) -> str:
	return base64.b64encode(struct.pack(f"<{len(samples)}h", *samples)).decode("ascii")


def sample_lesson(keywords: tuple = ("receipt", "card"), lines: int = 6) -> Dict[str, Any]:
	dialogue = [
		{"role": "Barista", "swedishText": "Hej hej! Vad får det lov att vara?", "translatedText": "Hi! What would you like?"},
		{"role": "Kund", "swedishText": "En kaffe, tack. Alltså, en stor.", "translatedText": "A coffee, please. A large one."},
		{"role": "Barista", "swedishText": "Precis. Vill du betala med card?", "translatedText": "Right. Card payment?"},
		{"role": "Kund", "swedishText": "Ja, faktiskt. Och jag behöver ett Receipt till jobbet.", "translatedText": "Yes. And I need a receipt for work."},
		{"role": "Barista", "swedishText": "Självklart, det ligger ju i påsen.", "translatedText": "Of course, it's in the bag."},
		{"role": "Kund", "swedishText": "Tack så mycket!", "translatedText": "Thanks a lot!"},
		{"role": "Barista", "swedishText": "Ha det så bra, liksom!", "translatedText": "Take care!"},
		{"role": "Kund", "swedishText": "Hej då!", "translatedText": "Bye!"},
		{"role": "Barista", "swedishText": "Hej då, väl!", "translatedText": "Bye then!"},
	]
	assert all(any(k.lower() in l["swedishText"].lower() for l in dialogue[:lines]) for k in keywords)
	return {
		"vocabulary": [{"term": "påtår", "translation": "free refill", "info": "Common at Swedish cafés"}],
		"dialogue": dialogue[:lines],
		"culturalTip": "Ask for a påtår: many cafés refill filter coffee for free during fika.",
		"pronunciation": [{"term": "kvitto", "explanation": "Short i, double t holds the consonant."}],
	}


def sample_evaluation(**overrides: Any) -> Dict[str, Any]:
	data = {
		"transcript": "Idag är det soligt men kallt.",
		"contentScore": 78,
		"pronunciationScore": 64.5,
		"strengths": ["Correct V2 word order in 'Idag är det'"],
		"improvements": ["Lengthen the vowel in 'kallt' less: it is short before double consonant"],
		"grammarNotes": "Good use of inversion after a time adverbial.",
		"pronunciationNotes": "Work on accent 2 in 'soligt'.",
	}
	data.update(overrides)
	return data


# ============================================================================
# AUDIO FAKES
# ============================================================================

class FakeHandle:
	def __init__(self, device: "FakeOutputDevice", buffer, on_ended) -> None:
		self.device = device
		self.buffer = buffer
		self.on_ended = on_ended
		self.stopped = False
		self.fail_on_stop = False

	def stop(self) -> None:
		self.stopped = True
		if self.fail_on_stop:
			raise RuntimeError("source already finished")

	@property
	def audible(self) -> bool:
		return not self.stopped and self in self.device.active

	def finish(self) -> None:
		"""Simulate the source reaching its natural end."""
		self.device.active.remove(self)
		self.on_ended()


class FakeOutputDevice:
	def __init__(self) -> None:
		self.state = "suspended"
		self.resumes = 0
		self.started: List[FakeHandle] = []
		self.active: List[FakeHandle] = []
		self.fail_on_start = False

	async def resume(self) -> None:
		self.resumes += 1
		self.state = "running"

	def start(self, buffer, on_ended) -> FakeHandle:
		assert self.state == "running"
		if self.fail_on_start:
			from svenska_coach.errors import PlaybackError

			raise PlaybackError("device gone")
		# Anything still sounding must have been stopped before a new source starts
		self.active = [h for h in self.active if not h.stopped]
		handle = FakeHandle(self, buffer, on_ended)
		self.started.append(handle)
		self.active.append(handle)
		return handle

	def audible(self) -> List[FakeHandle]:
		return [h for h in self.active if not h.stopped]


class FakeSynthesizer:
	sample_rate = 24000
	channels = 1

	def __init__(self, audio: Optional[str] = None) -> None:
		self.audio = audio if audio is not None else pcm16_base64([0, 1000, -1000, 32767])
		self.calls: List[str] = []
		self.gates: Dict[str, asyncio.Event] = {}
		self.return_none = False
		self.error: Optional[Exception] = None

	async def synthesize(self, text: str) -> Optional[str]:
		self.calls.append(text)
		gate = self.gates.get(text)
		if gate is not None:
			await gate.wait()
		if self.error is not None:
			raise self.error
		if self.return_none:
			return None
		return self.audio


class FakeStream:
	def __init__(self) -> None:
		self.closed = False

	def close(self) -> None:
		self.closed = True


class FakeMicrophone:
	mime_type = "audio/webm"

	def __init__(self, chunks: Optional[List[bytes]] = None, deny: bool = False) -> None:
		self.chunks = chunks if chunks is not None else [b"\x1a\x45", b"\xdf\xa3"]
		self.deny = deny
		self.streams: List[FakeStream] = []
		self.encode_error: Optional[Exception] = None

	async def open(self, on_chunk) -> FakeStream:
		if self.deny:
			raise MicrophonePermissionError("Permission denied by the platform")
		stream = FakeStream()
		self.streams.append(stream)
		for chunk in self.chunks:
			on_chunk(chunk)
		return stream

	def encode(self, chunks: List[bytes]) -> bytes:
		if self.encode_error is not None:
			raise self.encode_error
		return b"".join(chunks)


class FakeEvaluator:
	def __init__(self, result: Optional[EvaluationResult] = None) -> None:
		self.result = result or EvaluationResult.model_validate(sample_evaluation())
		self.calls: List[tuple] = []
		self.error: Optional[Exception] = None
		self.gate: Optional[asyncio.Event] = None

	async def evaluate(self, audio_base64: str, topic: str, *, mime_type: str = "audio/webm") -> EvaluationResult:
		self.calls.append((audio_base64, topic, mime_type))
		if self.gate is not None:
			await self.gate.wait()
		if self.error is not None:
			raise self.error
		return self.result
