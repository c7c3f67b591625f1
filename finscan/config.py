"""Configuration management for FinScan."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Configuration
    llm_provider: Literal["ollama", "openai", "gemini"] = "ollama"
    openai_api_key: str = ""
    gemini_api_key: str = ""
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-1.5-flash"
    llm_timeout: float = 120.0
    llm_max_attempts: int = 1  # Retries are opt-in

    # OCR Configuration
    tesseract_cmd: str = ""
    ocr_language: str = "eng"
    ocr_char_whitelist: str = "0123456789.,ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz/- "
    ocr_page_segmentation_mode: int = 6  # Tesseract PSM 6: single uniform block of text
    ocr_low_confidence_threshold: float = 50.0
    ocr_numeric_context_only: bool = True  # False restores global single-letter replacement

    # Development mode
    dev_mode: bool = True

    # Data directory
    data_dir: Path = Path.home() / ".finscan"

    # Upload handling
    max_upload_size: int = 10 * 1024 * 1024  # 10MB
    default_user_email: str = "default@example.com"
    default_user_name: str = "Default User"
    default_category_name: str = "Uncategorized"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # LLM_PROVIDER and llm_provider both work
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def db_path(self) -> Path:
        """Get the SQLite database path."""
        suffix = "dev" if self.dev_mode else "prod"
        return self.data_dir / f"finscan_{suffix}.db"

    @property
    def uploads_path(self) -> Path:
        """Get the uploads directory path."""
        return self.data_dir / "uploads"

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_path.mkdir(parents=True, exist_ok=True)

    def log_config(self) -> None:
        """Log current configuration with sensitive values redacted."""
        import os

        print("\n" + "=" * 60)
        print("📋 CONFIGURATION LOADED")
        print("=" * 60)

        env_llm_provider = os.getenv("LLM_PROVIDER")
        env_file_path = os.path.join(os.getcwd(), ".env")

        print(f"Working Directory:   {os.getcwd()}")
        print(f".env file exists:    {os.path.exists(env_file_path)}")

        if env_llm_provider:
            print(f"⚠️  ENV VAR override:   LLM_PROVIDER={env_llm_provider}")
        print("-" * 60)

        print(f"LLM Provider:        {self.llm_provider}")
        print(f"OpenAI API Key:      {_redact(self.openai_api_key)}")
        print(f"Gemini API Key:      {_redact(self.gemini_api_key)}")
        print(f"OpenAI Model:        {self.openai_model}")
        print(f"Gemini Model:        {self.gemini_model}")
        print(f"Ollama Host:         {self.ollama_host}")
        print(f"Ollama Model:        {self.ollama_model}")
        print(f"LLM Timeout:         {self.llm_timeout}s")
        print(f"Tesseract Binary:    {self.tesseract_cmd or '(PATH)'}")
        print(f"OCR Language:        {self.ocr_language}")
        print(f"OCR Page Seg Mode:   {self.ocr_page_segmentation_mode}")
        print(f"OCR Low Confidence:  < {self.ocr_low_confidence_threshold}")
        print(f"Dev Mode:            {self.dev_mode}")
        print(f"Data Directory:      {self.data_dir}")
        print(f"Database:            {self.db_path}")
        print(f"Uploads:             {self.uploads_path}")
        print(f"API Host:            {self.api_host}:{self.api_port}")
        print("=" * 60 + "\n")


def _redact(secret: str) -> str:
    if not secret:
        return "✗ Not set"
    return f"✓ Set ({secret[:8]}...{secret[-4:]})"


# Global settings instance
settings = Settings()
