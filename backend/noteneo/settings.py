from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Optional: cheaper model for the gating audit/quality calls
	gemini_model_gates: str | None = Field(default=None, validation_alias="GEMINI_MODEL_GATES")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional, text-only prompts)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="NoteNeo", validation_alias="OPENROUTER_TITLE")

	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	# "sql" (SQLAlchemy, DATABASE_URL) or "memory" (in-process, demo/offline mode)
	storage_backend: str = Field(default="sql", validation_alias="NOTENEO_STORAGE_BACKEND")

	# Uploaded files are written here and served under /files
	upload_dir: str = Field(default="./uploads", validation_alias="NOTENEO_UPLOAD_DIR")
	max_upload_bytes: int = Field(default=20 * 1024 * 1024, validation_alias="NOTENEO_MAX_UPLOAD_BYTES")
	# Upper bound in seconds for a single policy-audit or quality-scoring call
	gate_timeout_seconds: float = Field(default=45.0, validation_alias="NOTENEO_GATE_TIMEOUT")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
