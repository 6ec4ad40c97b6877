from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Level(str, Enum):
	BASIC_LITERACY = "SFI C/D"
	PROFESSIONAL = "Professional"
	SLANG = "Slang/Casual"


# Register the model is asked to write in, per level
LEVEL_REGISTER: Dict[Level, str] = {
	Level.BASIC_LITERACY: "clear grammar and common, high-frequency words (plain register)",
	Level.PROFESSIONAL: "formal yet modern corporate Swedish (formal register)",
	Level.SLANG: "high-frequency street slang and contractions, e.g. 'ska' instead of 'skall', 'dom' instead of 'de/dem' (colloquial register)",
}

_KEYWORD_SPLIT = re.compile(r"[,\n;，、]+")


class CoachRequest(BaseModel):
	model_config = ConfigDict(frozen=True)

	scenario: str = Field(min_length=1)
	level: Level = Level.BASIC_LITERACY
	keywords: str = ""

	def keyword_list(self) -> List[str]:
		return [k.strip() for k in _KEYWORD_SPLIT.split(self.keywords) if k.strip()]


class _WireModel(BaseModel):
	"""Strict camelCase model for JSON produced by the remote model."""

	model_config = ConfigDict(
		alias_generator=to_camel,
		populate_by_name=True,
		strict=True,
		frozen=True,
	)


class VocabularyItem(_WireModel):
	term: str
	translation: str
	info: str


class DialogueLine(_WireModel):
	role: str
	swedish_text: str
	translated_text: str


class PronunciationKey(_WireModel):
	term: str
	explanation: str


class LessonDocument(_WireModel):
	vocabulary: List[VocabularyItem]
	dialogue: List[DialogueLine]
	cultural_tip: str
	pronunciation: List[PronunciationKey]

	def swedish_text(self) -> str:
		return "\n".join(line.swedish_text for line in self.dialogue)


class EvaluationResult(_WireModel):
	transcript: str
	content_score: float = Field(ge=0, le=100)
	pronunciation_score: float = Field(ge=0, le=100)
	strengths: List[str]
	improvements: List[str]
	grammar_notes: str
	pronunciation_notes: str


# ============================================================================
# GEMINI RESPONSE SCHEMAS (OpenAPI subset accepted by generationConfig)
# ============================================================================

def _object(properties: Dict[str, Any]) -> Dict[str, Any]:
	return {"type": "OBJECT", "properties": properties, "required": list(properties)}


def _array_of(items: Dict[str, Any]) -> Dict[str, Any]:
	return {"type": "ARRAY", "items": items}


_STRING = {"type": "STRING"}
_NUMBER = {"type": "NUMBER"}

LESSON_RESPONSE_SCHEMA: Dict[str, Any] = _object({
	"vocabulary": _array_of(_object({"term": _STRING, "translation": _STRING, "info": _STRING})),
	"dialogue": _array_of(_object({"role": _STRING, "swedishText": _STRING, "translatedText": _STRING})),
	"culturalTip": _STRING,
	"pronunciation": _array_of(_object({"term": _STRING, "explanation": _STRING})),
})

EVALUATION_RESPONSE_SCHEMA: Dict[str, Any] = _object({
	"transcript": _STRING,
	"contentScore": _NUMBER,
	"pronunciationScore": _NUMBER,
	"strengths": _array_of(_STRING),
	"improvements": _array_of(_STRING),
	"grammarNotes": _STRING,
	"pronunciationNotes": _STRING,
})


# ============================================================================
# HTTP MODELS
# ============================================================================

class SynthesizeRequest(BaseModel):
	text: str = Field(min_length=1)


class SynthesizeResponse(BaseModel):
	audio_base64: str
	sample_rate: int
	channels: int


class PlayRequest(BaseModel):
	id: str = Field(min_length=1)
	text: str = Field(min_length=1)


class StopRecordingRequest(BaseModel):
	topic: str = Field(min_length=1)
