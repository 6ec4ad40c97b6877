"""
Speech Synthesis and Evaluation
===============================

Two thin clients over the Gemini API:

- ``SpeechSynthesisClient`` turns a short Swedish string into base64 PCM16
  audio. A reply without audio (safety filter, quota) is a normal outcome
  and comes back as ``None``; transport failures still raise.
- ``SpeechEvaluationClient`` uploads a recording with a topic prompt and
  returns a strictly validated ``EvaluationResult``.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from .errors import (
	CoachError,
	EmptyResponseError,
	EvaluationError,
	EvaluationSchemaError,
	QuotaExceededError,
	as_evaluation_error,
)
from .gemini_client import GeminiClient
from .schemas import EVALUATION_RESPONSE_SCHEMA, EvaluationResult
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

DEFAULT_RECORDING_MIME = "audio/webm"

EVALUATION_INSTRUCTION = """
You are an experienced Swedish speaking examiner and pronunciation coach.
You receive a learner's spoken Swedish recording and the topic they were asked to talk about.

1. Transcribe the recording verbatim in "transcript" (keep the learner's mistakes).
2. "contentScore" (0-100): grammar, vocabulary range and relevance to the topic.
3. "pronunciationScore" (0-100): prosody, vowel length and the Swedish pitch accent (accent 1 / accent 2).
4. "strengths": concrete things the learner did well, quoting their words. No generic praise.
5. "improvements": concrete, actionable items, each naming the word or structure to fix.
6. "grammarNotes": a short pedagogical note on grammar.
7. "pronunciationNotes": a short pedagogical note on pronunciation.

Return JSON matching the provided schema and nothing else.
""".strip()


class SpeechSynthesisClient:
	def __init__(self, client: GeminiClient, *, config: Optional[Settings] = None) -> None:
		self._client = client
		self._settings = config or default_settings

	@property
	def sample_rate(self) -> int:
		return self._settings.tts_sample_rate

	@property
	def channels(self) -> int:
		return self._settings.tts_channels

	async def synthesize(self, text: str) -> Optional[str]:
		"""Return base64 PCM16 audio for ``text``, or ``None`` if none was produced."""
		try:
			return await self._client.generate_audio(
				self._settings.gemini_model_tts,
				text,
				voice=self._settings.tts_voice,
			)
		except (EmptyResponseError, QuotaExceededError) as exc:
			logger.warning("TTS returned no audio for %r: %s", text[:40], exc)
			return None


def build_evaluation_prompt(topic: str) -> str:
	return f"Topic the learner was asked to talk about: {topic}\n\nEvaluate the attached recording."


def parse_evaluation(raw: str) -> EvaluationResult:
	try:
		return EvaluationResult.model_validate_json(raw)
	except ValidationError as exc:
		logger.error("Evaluation JSON did not match EvaluationResult: %s", raw[:200])
		raise EvaluationSchemaError(f"Evaluation response failed validation: {exc.error_count()} error(s)") from exc


class SpeechEvaluationClient:
	def __init__(self, client: GeminiClient, *, config: Optional[Settings] = None) -> None:
		self._client = client
		self._settings = config or default_settings

	async def evaluate(self, audio_base64: str, topic: str, *, mime_type: str = DEFAULT_RECORDING_MIME) -> EvaluationResult:
		parts = [
			{"text": build_evaluation_prompt(topic)},
			{"inline_data": {"mime_type": mime_type, "data": audio_base64}},
		]
		try:
			raw = await self._client.generate_json(
				self._settings.evaluation_model,
				parts,
				system_instruction=EVALUATION_INSTRUCTION,
				response_schema=EVALUATION_RESPONSE_SCHEMA,
			)
			result = parse_evaluation(raw)
		except EvaluationError:
			raise
		except CoachError as exc:
			logger.error("Speech evaluation failed for topic %r: %s", topic, exc)
			raise as_evaluation_error(exc) from exc
		logger.info(
			"Evaluated recording: content=%.0f pronunciation=%.0f",
			result.content_score,
			result.pronunciation_score,
		)
		return result
