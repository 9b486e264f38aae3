import os
from dataclasses import dataclass

_DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"


def _float_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Config:
    log_format: str = "json"
    generation_provider: str = "gemini"
    gemini_api_key: str | None = None
    generation_model: str = "gemini-2.0-flash-exp"
    generation_base_url: str = _DEFAULT_GEMINI_BASE_URL
    generation_http_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "Config":
        api_key = os.environ.get("GEMINI_API_KEY", "").strip()

        return cls(
            log_format=os.environ.get("COACH_LOG_FORMAT", "json"),
            generation_provider=os.environ.get("COACH_GENERATION_PROVIDER", "gemini").strip().lower(),
            gemini_api_key=api_key or None,
            generation_model=os.environ.get("COACH_GENERATION_MODEL", "gemini-2.0-flash-exp").strip(),
            generation_base_url=os.environ.get(
                "COACH_GENERATION_BASE_URL", _DEFAULT_GEMINI_BASE_URL
            ).rstrip("/"),
            generation_http_timeout_seconds=_float_env("COACH_GENERATION_HTTP_TIMEOUT", "5.0"),
        )
