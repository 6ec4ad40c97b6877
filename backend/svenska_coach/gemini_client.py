from __future__ import annotations
import asyncio
import logging
import httpx
from typing import Any, Dict, List, Optional
from .errors import (
	ConfigurationError,
	EmptyResponseError,
	QuotaExceededError,
	RequestTimeoutError,
	SchemaError,
	TransportError,
)
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_AI_STUDIO_BASE = "https://generativelanguage.googleapis.com"


class GeminiClient:
	"""Async client for the Gemini ``generateContent`` REST endpoint.

	The API key is read lazily: a client can be built without one and only the
	first call raises ``ConfigurationError``.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		config: Optional[Settings] = None,
		base_url: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self._settings = config or default_settings
		self.api_key = api_key or self._settings.gemini_api_key
		self.provider = self._settings.gemini_provider
		if self.provider == "vertex":
			region = self._settings.vertex_region
			project = self._settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			root = base_url or self._settings.gemini_base_url or f"https://{region}-aiplatform.googleapis.com"
			self._model_url = root.rstrip("/") + f"/v1/projects/{project}/locations/{region}/publishers/google/models/{{model}}:generateContent"
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			root = base_url or self._settings.gemini_base_url or _AI_STUDIO_BASE
			self._model_url = root.rstrip("/") + "/v1beta/models/{model}:generateContent"
			self._auth_in_query = True
		# Per-phase httpx timeout; _post_payload also enforces it as a total deadline
		self._timeout = timeout if timeout is not None else self._settings.request_timeout_seconds
		self._client = httpx.AsyncClient(
			timeout=self._timeout,
			transport=transport,
		)

	def url_for(self, model: str) -> str:
		return self._model_url.format(model=model)

	async def generate_json(
		self,
		model: str,
		parts: List[Dict[str, Any]],
		*,
		system_instruction: str,
		response_schema: Dict[str, Any],
	) -> str:
		"""Structured generation; returns the raw JSON text of the first candidate."""
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_instruction}]},
			"contents": [{"role": "user", "parts": parts}],
			"generationConfig": {
				"responseMimeType": "application/json",
				"responseSchema": response_schema,
			},
		}
		data = await self._post_payload(model, payload)
		texts = [p.get("text", "") for p in _candidate_parts(data)]
		if not all(isinstance(t, str) for t in texts):
			raise SchemaError("Gemini returned a non-text part")
		text = "".join(texts)
		if not text.strip():
			raise EmptyResponseError("Gemini returned no text")
		return text

	async def generate_audio(self, model: str, text: str, *, voice: str) -> str:
		"""Text-to-speech; returns the base64 inline audio of the first candidate."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": text}]}],
			"generationConfig": {
				"responseModalities": ["AUDIO"],
				"speechConfig": {
					"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
				},
			},
		}
		data = await self._post_payload(model, payload)
		for part in _candidate_parts(data):
			inline = part.get("inlineData") or part.get("inline_data") or {}
			if not isinstance(inline, dict):
				raise SchemaError("Gemini inline data is not an object")
			if inline.get("data"):
				if not isinstance(inline["data"], str):
					raise SchemaError("Gemini inline audio is not a base64 string")
				return inline["data"]
		raise EmptyResponseError("Gemini returned no audio")

	async def _post_payload(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
		if not self.api_key:
			raise ConfigurationError("GEMINI_API_KEY is not configured")
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await asyncio.wait_for(
				self._client.post(self.url_for(model), params=params, headers=headers, json=payload),
				timeout=self._timeout,
			)
			r.raise_for_status()
		except (httpx.TimeoutException, asyncio.TimeoutError) as timeout_err:
			raise RequestTimeoutError(f"Gemini call to {model} timed out") from timeout_err
		except httpx.HTTPStatusError as http_err:
			status = http_err.response.status_code
			logger.error("Gemini %s returned HTTP %s: %s", model, status, http_err.response.text[:200])
			if status == 429:
				raise QuotaExceededError(f"Gemini rate limit for {model}", status_code=status) from http_err
			raise TransportError(f"Gemini returned HTTP {status}", status_code=status) from http_err
		except httpx.RequestError as net_err:
			logger.error("Gemini %s request failed: %s", model, net_err)
			raise TransportError(f"Gemini request failed: {net_err}") from net_err
		try:
			data = r.json()
		except ValueError as err:
			raise EmptyResponseError(f"Unexpected Gemini response: {r.text[:200]}") from err
		if not isinstance(data, dict):
			raise SchemaError(f"Gemini response body is a {type(data).__name__}, expected an object")
		return data

	async def aclose(self) -> None:
		await self._client.aclose()


def _expect(value: Any, kind: type, what: str) -> Any:
	if not isinstance(value, kind):
		raise SchemaError(f"Gemini {what} is a {type(value).__name__}, expected {kind.__name__}")
	return value


def _candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
	feedback = _expect(data.get("promptFeedback") or {}, dict, "promptFeedback")
	if feedback.get("blockReason"):
		raise EmptyResponseError(f"Gemini blocked the prompt: {feedback['blockReason']}")
	candidates = _expect(data.get("candidates") or [], list, "candidates")
	if not candidates:
		raise EmptyResponseError("Gemini returned no candidates")
	candidate = _expect(candidates[0], dict, "candidate")
	content = _expect(candidate.get("content") or {}, dict, "content")
	parts = _expect(content.get("parts") or [], list, "parts")
	if not parts:
		reason = candidate.get("finishReason", "unknown")
		raise EmptyResponseError(f"Gemini returned no content (finishReason={reason})")
	for part in parts:
		_expect(part, dict, "part")
	return parts
