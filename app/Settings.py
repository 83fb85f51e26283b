import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MODEL = "gemini-2.5-flash"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}")


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str]
    model_name: str
    camera_index: int
    camera_width: int
    camera_height: int
    jpeg_quality: int
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        # API_KEY é a chave pré-provisionada; GEMINI_API_KEY é o nome usado pelo SDK
        api_key = os.environ.get("API_KEY", "").strip() or os.environ.get("GEMINI_API_KEY", "").strip()
        model_name = os.environ.get("SKIN_SCAN_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL
        jpeg_quality = _int_env("JPEG_QUALITY", 90)
        if not 1 <= jpeg_quality <= 100:
            raise RuntimeError("JPEG_QUALITY must be between 1 and 100")

        return Settings(
            api_key=api_key or None,
            model_name=model_name,
            camera_index=_int_env("CAMERA_INDEX", 0),
            camera_width=_int_env("CAMERA_WIDTH", 1080),
            camera_height=_int_env("CAMERA_HEIGHT", 1080),
            jpeg_quality=jpeg_quality,
            log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
