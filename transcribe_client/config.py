"""Configuration constants, language list, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Upload limits, accepted MIME types, polling
cadence, and the language list are plain data structures kept out of
the logic, so they can be changed in one place.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, sets, and numbers. load_api_url() and
load_auth_token() give a clear error when required settings are missing.

RULES:
- Base API URL and bearer token are both required for any network call
- The bearer token comes from TRANSCRIBE_AUTH_TOKEN, else the stored login
- MAX_AUDIO_BYTES applies both before and after WAV re-encoding
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from transcribe_client.errors import ConfigurationError

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Languages offered for the optional language hint
# ---------------------------------------------------------------------------

LANGUAGES: dict[str, tuple[str, str]] = {
    "en": ("English", "English"),
    "ja": ("Japanese", "日本語"),
    "ko": ("Korean", "한국어"),
    "zh": ("Chinese", "中文"),
    "es": ("Spanish", "Español"),
    "fr": ("French", "Français"),
    "de": ("German", "Deutsch"),
    "it": ("Italian", "Italiano"),
    "pt": ("Portuguese", "Português"),
    "ru": ("Russian", "Русский"),
}
"""Language code → (English name, native name)."""


def language_name(code: str | None) -> str:
    """Return a display name for a language code.

    RULES:
    - None means "let the provider auto-detect"
    - Unknown codes are shown upper-cased, as the history view does
    """
    if not code:
        return "Auto-detect"
    names = LANGUAGES.get(code)
    if names is None:
        return code.upper()
    return "{} ({})".format(names[0], names[1])


# ---------------------------------------------------------------------------
# Audio acceptance
# ---------------------------------------------------------------------------

MAX_AUDIO_BYTES = 5 * 1024 * 1024
"""Ceiling for both the user-supplied file and the re-encoded WAV payload."""

ALLOWED_AUDIO_MIME_TYPES: set[str] = {
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/wave",
    "audio/x-wav", "audio/aac", "audio/ogg", "audio/flac",
    "audio/x-m4a", "audio/mp4", "audio/x-mp3",
}

CAPTURE_SAMPLE_RATE = 44100
CAPTURE_CHANNELS = 1

# ---------------------------------------------------------------------------
# API configuration defaults
# ---------------------------------------------------------------------------

TRANSCRIBE_API_URL = os.getenv("TRANSCRIBE_API_URL", "").strip()
TRANSCRIBE_HTTP_TIMEOUT_S = float(os.getenv("TRANSCRIBE_HTTP_TIMEOUT_S", "30"))

UPLOAD_PATH = "/api/transcribe/upload/"
HISTORY_PATH = "/api/transcribe/"
LOGIN_PATH = "/login/"

UPLOAD_MAX_ATTEMPTS = 3
UPLOAD_BACKOFF_BASE_S = 1.0

POLL_INTERVAL_S = float(os.getenv("TRANSCRIBE_POLL_INTERVAL_S", "2.0"))
POLL_MAX_ATTEMPTS = int(os.getenv("TRANSCRIBE_POLL_MAX_ATTEMPTS", "150"))

STORAGE_PATH = Path(
    os.getenv(
        "TRANSCRIBE_STORAGE_PATH",
        str(Path.home() / ".transcribe_client" / "storage.json"),
    )
)
"""Client-local storage file holding ``auth_token`` and ``user``."""


def load_api_url() -> str:
    """Load the provider's base URL from the environment.

    RULES:
    - Raises ConfigurationError if TRANSCRIBE_API_URL is missing or empty
    - Trailing slashes are stripped
    """
    url = os.getenv("TRANSCRIBE_API_URL", TRANSCRIBE_API_URL).strip()
    if not url:
        raise ConfigurationError(
            "Transcription API URL not configured. "
            "Add TRANSCRIBE_API_URL to the .env file."
        )
    return url.rstrip("/")


def load_auth_token() -> str:
    """Load the bearer token used on every provider call.

    WHY: Every request carries a bearer credential. A static token from the
    environment is the primary source; a token saved by ``login`` is the
    fallback so a logged-in user does not need to edit .env.

    HOW: Reads TRANSCRIBE_AUTH_TOKEN, then the ``auth_token`` key of the
    local storage file.

    RULES:
    - Raises ConfigurationError if neither source has a token
    - Never returns a default/placeholder value
    """
    token = os.getenv("TRANSCRIBE_AUTH_TOKEN", "").strip()
    if token:
        return token

    from transcribe_client.api.auth import TokenStore

    stored = TokenStore().get_token()
    if stored:
        return stored

    raise ConfigurationError(
        "Transcription API token not configured. "
        "Add TRANSCRIBE_AUTH_TOKEN to the .env file or run the login command."
    )
