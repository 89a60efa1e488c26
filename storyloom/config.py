"""Environment configuration for storyloom.

Values come from the process environment, with a ``.env`` file loaded
first if one exists in the working directory or above the package.
Per-session engine tuning lives in EngineSettings (settings.py); this
module only holds what a host sets once per deployment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

PROVIDER_PREFERENCE = ("anthropic", "google", "openai")


def _find_env_file() -> Path | None:
    """Nearest .env, checking the working directory, then up from the package."""
    candidates = [Path.cwd()] + list(Path(__file__).resolve().parents)[:4]
    for directory in candidates:
        env_path = directory / ".env"
        if env_path.is_file():
            return env_path
    return None


_env_file = _find_env_file()
if _env_file:
    load_dotenv(_env_file)


class Config:
    """Deployment configuration from environment variables."""

    # Provider selection; empty means pick the first configured key
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "")

    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")

    # Overrides the provider's default decision model
    DECISION_MODEL: str = os.getenv("STORYLOOM_DECISION_MODEL", "")

    # Engine defaults picked up by EngineSettings.from_env()
    GENERATION_MODE: str = os.getenv("STORYLOOM_GENERATION_MODE", "hybrid")
    TOKEN_BUDGET: int = int(os.getenv("STORYLOOM_TOKEN_BUDGET", "2000"))
    SETTINGS_PATH: str = os.getenv("STORYLOOM_SETTINGS_PATH", "")

    LOG_LEVEL: str = os.getenv("STORYLOOM_LOG_LEVEL", "INFO")
    # Per-logger overrides, e.g. "storyloom.decisions=DEBUG,storyloom.lore=WARNING"
    LOG_LEVELS: str = os.getenv("STORYLOOM_LOG_LEVELS", "")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    @classmethod
    def api_keys(cls) -> dict[str, str]:
        return {
            "anthropic": cls.ANTHROPIC_API_KEY,
            "google": cls.GOOGLE_API_KEY,
            "openai": cls.OPENAI_API_KEY,
        }

    @classmethod
    def primary_provider(cls, keys: dict[str, str] | None = None) -> str | None:
        """LLM_PROVIDER if it has a key, else the first configured provider."""
        keys = cls.api_keys() if keys is None else keys
        requested = cls.LLM_PROVIDER.lower()
        if requested and keys.get(requested):
            return requested
        for name in PROVIDER_PREFERENCE:
            if keys.get(name):
                return name
        return None

    @classmethod
    def validate(cls) -> list[str]:
        """Configuration problems, as messages for the operator."""
        issues = []

        if cls.GENERATION_MODE not in ("template", "model", "hybrid"):
            issues.append(f"Unknown STORYLOOM_GENERATION_MODE '{cls.GENERATION_MODE}'")
        elif cls.GENERATION_MODE != "template" and cls.primary_provider() is None:
            issues.append(
                "No LLM API keys configured. "
                "Set GOOGLE_API_KEY, ANTHROPIC_API_KEY, or OPENAI_API_KEY in .env, "
                "or run with STORYLOOM_GENERATION_MODE=template"
            )

        requested = cls.LLM_PROVIDER.lower()
        if requested and requested not in PROVIDER_PREFERENCE:
            issues.append(f"Unknown LLM_PROVIDER '{cls.LLM_PROVIDER}'")

        return issues
