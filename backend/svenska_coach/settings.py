from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_base_url: str | None = Field(default=None, validation_alias="GEMINI_BASE_URL")
	# Lesson generation model
	gemini_model: str = Field(default="gemini-3-flash-preview", validation_alias="GEMINI_MODEL")
	gemini_model_tts: str = Field(default="gemini-2.5-flash-preview-tts", validation_alias="GEMINI_MODEL_TTS")
	# Optional: model override for speech evaluation, falls back to gemini_model
	gemini_model_eval: str | None = Field(default=None, validation_alias="GEMINI_MODEL_EVAL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Speech synthesis output; the TTS model currently returns mono PCM16 at 24 kHz
	tts_voice: str = Field(default="Kore", validation_alias="COACH_TTS_VOICE")
	tts_sample_rate: int = Field(default=24000, validation_alias="COACH_TTS_SAMPLE_RATE")
	tts_channels: int = Field(default=1, validation_alias="COACH_TTS_CHANNELS")

	translation_language: str = Field(default="Chinese (Simplified)", validation_alias="COACH_TRANSLATION_LANGUAGE")
	request_timeout_seconds: float = Field(default=60.0, validation_alias="COACH_REQUEST_TIMEOUT_SECONDS")

	# Local audio devices (sounddevice names or indices, empty means system default)
	recording_sample_rate: int = Field(default=16000, validation_alias="COACH_RECORDING_SAMPLE_RATE")
	input_device: str | None = Field(default=None, validation_alias="COACH_INPUT_DEVICE")
	output_device: str | None = Field(default=None, validation_alias="COACH_OUTPUT_DEVICE")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def evaluation_model(self) -> str:
		return self.gemini_model_eval or self.gemini_model

settings = Settings()
