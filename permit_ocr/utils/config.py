"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, List, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """LLM configuration."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str = "gpt-4.1-mini"
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: int = 60
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    base_url: str | None = None
    api_key: str | None = None

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is between 0 and 1."""
        if not 0 <= v <= 1:
            raise ValueError("Temperature must be between 0 and 1")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v


class ExtractionConfig(BaseSettings):
    """Document date/field extraction configuration."""

    max_payload_bytes: int = 3 * 1024 * 1024
    allowed_mime_types: List[str] = Field(
        default=[
            "image/png",
            "image/jpeg",
            "image/webp",
            "image/gif",
            "application/pdf",
        ]
    )
    ai_confidence: float = Field(default=0.95, gt=0.0, le=1.0)
    pattern_confidence: float = Field(default=0.85, gt=0.0, le=1.0)
    excerpt_length: int = Field(default=60, ge=10)
    collect_candidates: bool = True
    patterns_file: str = "config/document_patterns.yaml"
    prompts_file: str = "config/extraction_prompts.yaml"
    normalization_rules_file: str | None = None
    llm: LLMConfig = Field(default_factory=LLMConfig)


class PipelineConfig(BaseSettings):
    """Batch pipeline configuration."""

    max_workers: int = Field(default=3, ge=1)
    max_batch_size: int = Field(default=50, ge=1)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: str | None = "logs/permit_ocr.log"
    max_size_mb: int = 10
    backup_count: int = 3


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Environment variables
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win)."""
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If the YAML root is not a mapping
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Only non-default env values are layered on top of YAML.
        env_overrides = cls().model_dump(exclude_defaults=True)
        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def llm_settings(self) -> LLMConfig:
        """Return the LLM config with credentials filled from env/.env settings.

        pydantic-settings reads ``.env`` into this model without exporting it to
        the process environment, so the SDK clients would not see those keys.
        """
        llm = self.extraction.llm
        if llm.provider == "anthropic":
            api_key = llm.api_key or self.anthropic_api_key or None
            base_url = llm.base_url
        else:
            api_key = llm.api_key or self.openai_api_key or None
            base_url = llm.base_url or self.openai_base_url or None
        return llm.model_copy(update={"api_key": api_key, "base_url": base_url})

    def validate_config(self) -> None:
        """Validate configuration settings.

        Raises:
            ValueError: If configuration is invalid
        """
        llm = self.llm_settings()
        if llm.provider == "openai" and not llm.api_key:
            if "api.openai.com" in (llm.base_url or ""):
                raise ValueError("OpenAI API key required when using openai provider")
        if llm.provider == "anthropic" and not llm.api_key:
            raise ValueError("Anthropic API key required when using anthropic provider")

        if self.extraction.max_payload_bytes <= 0:
            raise ValueError("max_payload_bytes must be positive")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration."""
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config()
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
