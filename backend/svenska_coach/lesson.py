"""
Lesson Generation
=================

Builds the structured-generation request for a Swedish dialogue lesson and
validates what comes back. The remote model is asked for JSON that matches
``LESSON_RESPONSE_SCHEMA``; the reply is then checked against the
``LessonDocument`` model and against the lesson rules (dialogue length,
every requested keyword present). Nothing is cached: every call queries the
model again.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from .errors import CoachError, GenerationError, LessonSchemaError, as_generation_error
from .gemini_client import GeminiClient
from .schemas import LESSON_RESPONSE_SCHEMA, LEVEL_REGISTER, CoachRequest, LessonDocument, Level
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

MIN_DIALOGUE_LINES = 5
MAX_DIALOGUE_LINES = 8

FILLER_WORDS = ("liksom", "ju", "väl", "precis", "alltså", "faktiskt")


def build_system_instruction(translation_language: str) -> str:
	"""Fixed system prompt for lesson generation."""
	registers = "\n".join(f"- For '{level.value}', use {LEVEL_REGISTER[level]}." for level in Level)
	fillers = ", ".join(f"'{w}'" for w in FILLER_WORDS)
	return f"""
You are a world-class Swedish language coach and cultural expert (SvenskaKompis).
Generate authentic, everyday, practical Swedish dialogues based on the learner's input.

RULES:
1. Always weave in natural Swedish filler words such as {fillers}.
2. Tone: friendly, encouraging and professional, with a touch of Swedish humour ('lagom' jokes).
3. Adapt the register to the requested level:
{registers}
4. The dialogue has between {MIN_DIALOGUE_LINES} and {MAX_DIALOGUE_LINES} lines (exchanges).
5. Every requested keyword MUST appear verbatim in the Swedish text of the dialogue.
6. The cultural tip must be hyper-specific to Sweden (e.g. fika etiquette, Systembolaget opening hours, laundry room drama in the 'tvättstuga'), never a generic travel-guide fact.
7. Translations ("translation", "translatedText") are written in {translation_language}.
8. Output valid JSON matching the provided schema and nothing else.
""".strip()


def build_user_prompt(request: CoachRequest) -> str:
	keywords = request.keyword_list()
	keyword_line = ", ".join(keywords) if keywords else "(none)"
	return f"""
Scenario: {request.scenario}
Level: {request.level.value}
Keywords to include: {keyword_line}

Generate a {MIN_DIALOGUE_LINES}-{MAX_DIALOGUE_LINES} round dialogue. Use every keyword naturally.
""".strip()


def missing_keywords(lesson: LessonDocument, keywords: List[str]) -> List[str]:
	text = lesson.swedish_text().casefold()
	return [k for k in keywords if k.casefold() not in text]


def parse_lesson(raw: str, request: CoachRequest) -> LessonDocument:
	"""Validate the model's JSON reply; raise ``LessonSchemaError`` on any mismatch."""
	try:
		lesson = LessonDocument.model_validate_json(raw)
	except ValidationError as exc:
		logger.error("Lesson JSON did not match LessonDocument: %s", raw[:200])
		raise LessonSchemaError(f"Lesson response failed validation: {exc.error_count()} error(s)") from exc
	if not MIN_DIALOGUE_LINES <= len(lesson.dialogue) <= MAX_DIALOGUE_LINES:
		raise LessonSchemaError(
			f"Dialogue has {len(lesson.dialogue)} lines, expected {MIN_DIALOGUE_LINES}-{MAX_DIALOGUE_LINES}"
		)
	missing = missing_keywords(lesson, request.keyword_list())
	if missing:
		raise LessonSchemaError(f"Dialogue is missing keywords: {', '.join(missing)}")
	if not lesson.cultural_tip.strip():
		raise LessonSchemaError("Lesson has an empty cultural tip")
	return lesson


class LessonClient:
	def __init__(self, client: GeminiClient, *, config: Optional[Settings] = None) -> None:
		self._client = client
		self._settings = config or default_settings

	async def generate_lesson(self, request: CoachRequest) -> LessonDocument:
		try:
			raw = await self._client.generate_json(
				self._settings.gemini_model,
				[{"text": build_user_prompt(request)}],
				system_instruction=build_system_instruction(self._settings.translation_language),
				response_schema=LESSON_RESPONSE_SCHEMA,
			)
			lesson = parse_lesson(raw, request)
		except GenerationError:
			raise
		except CoachError as exc:
			logger.error("Lesson generation failed for %r: %s", request.scenario, exc)
			raise as_generation_error(exc) from exc
		logger.info("Generated lesson for %r with %d dialogue lines", request.scenario, len(lesson.dialogue))
		return lesson
