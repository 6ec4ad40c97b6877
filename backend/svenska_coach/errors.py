"""
Error taxonomy shared by the remote clients, the audio layer and the routes.

Kinds describe what went wrong (transport, schema, empty response, ...).
Operation errors (GenerationError, EvaluationError) describe which user
action failed. Concrete failures of an operation inherit from both, so a
caller can catch either ``SchemaError`` or ``EvaluationError``.
"""

from __future__ import annotations

from typing import Optional


class CoachError(Exception):
	"""Root of every error raised by svenska_coach."""

	user_message = "Oj då! Something went wrong. Please try again."

	def __init__(self, message: str = "", *, user_message: Optional[str] = None) -> None:
		super().__init__(message or self.user_message)
		if user_message is not None:
			self.user_message = user_message


# ============================================================================
# KINDS
# ============================================================================

class ConfigurationError(CoachError):
	user_message = "The Gemini API key is not configured."


class TransportError(CoachError):
	user_message = "Could not reach the language service. Check your connection and try again."

	def __init__(self, message: str = "", *, status_code: Optional[int] = None, user_message: Optional[str] = None) -> None:
		super().__init__(message, user_message=user_message)
		self.status_code = status_code


class RequestTimeoutError(TransportError, TimeoutError):
	user_message = "The language service took too long to answer."


class QuotaExceededError(TransportError):
	user_message = "The language service is rate limited right now. Wait a moment and try again."


class SchemaError(CoachError):
	user_message = "The language service returned an answer in an unexpected format."


class EmptyResponseError(CoachError):
	user_message = "The language service returned no content."


class MicrophonePermissionError(CoachError, PermissionError):
	user_message = "Microphone access was denied."


class PlaybackError(CoachError):
	user_message = "Playback failed."


class DecodeError(CoachError, ValueError):
	user_message = "The audio data could not be decoded."


class SupersededError(CoachError):
	"""A newer request on the same channel replaced this one."""

	user_message = "This request was replaced by a newer one."


# ============================================================================
# OPERATIONS
# ============================================================================

class GenerationError(CoachError):
	user_message = "Oj då! The lesson could not be generated. Please check your API key or try again."


class LessonTransportError(GenerationError, TransportError):
	pass


class LessonTimeoutError(GenerationError, RequestTimeoutError):
	pass


class LessonSchemaError(GenerationError, SchemaError):
	pass


class LessonEmptyResponseError(GenerationError, EmptyResponseError):
	pass


class LessonConfigurationError(GenerationError, ConfigurationError):
	pass


class EvaluationError(CoachError):
	user_message = "Your recording could not be evaluated. Please try again."


class EvaluationTransportError(EvaluationError, TransportError):
	pass


class EvaluationTimeoutError(EvaluationError, RequestTimeoutError):
	pass


class EvaluationSchemaError(EvaluationError, SchemaError):
	pass


class EvaluationEmptyResponseError(EvaluationError, EmptyResponseError):
	pass


class EvaluationConfigurationError(EvaluationError, ConfigurationError):
	user_message = ConfigurationError.user_message


_LESSON_ERRORS = (
	(ConfigurationError, LessonConfigurationError),
	(RequestTimeoutError, LessonTimeoutError),
	(TransportError, LessonTransportError),
	(SchemaError, LessonSchemaError),
	(EmptyResponseError, LessonEmptyResponseError),
)

_EVALUATION_ERRORS = (
	(ConfigurationError, EvaluationConfigurationError),
	(RequestTimeoutError, EvaluationTimeoutError),
	(TransportError, EvaluationTransportError),
	(SchemaError, EvaluationSchemaError),
	(EmptyResponseError, EvaluationEmptyResponseError),
)


def _as_operation_error(exc: CoachError, table, fallback: type) -> CoachError:
	for kind, operation_cls in table:
		if isinstance(exc, kind):
			status_code = getattr(exc, "status_code", None)
			if issubclass(operation_cls, TransportError):
				return operation_cls(str(exc), status_code=status_code)
			return operation_cls(str(exc))
	return fallback(str(exc))


def as_generation_error(exc: CoachError) -> CoachError:
	return _as_operation_error(exc, _LESSON_ERRORS, GenerationError)


def as_evaluation_error(exc: CoachError) -> CoachError:
	return _as_operation_error(exc, _EVALUATION_ERRORS, EvaluationError)
