"""Gateway settings, read from GATEWAY_* environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from ..models import DEFAULT_MAX_FILE_SIZE, RELAXED_MAX_FILE_SIZE, SUPPORTED_TYPES

CACHE_MAX_AGE = 7 * 24 * 60 * 60  # 7 days


@dataclass(frozen=True)
class GatewaySettings:
    """Validation and optimization policy of the gateway."""
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    supported_types: Tuple[str, ...] = SUPPORTED_TYPES
    quality: int = 80
    max_width: int = 1200
    max_height: int = 1200
    cache_max_age: int = CACHE_MAX_AGE
    region: str = "local"
    allowed_origins: Tuple[str, ...] = ("*",)

    def __post_init__(self):
        if not 0 < self.max_file_size <= RELAXED_MAX_FILE_SIZE:
            raise ValueError(f"max_file_size must be between 1 and {RELAXED_MAX_FILE_SIZE} bytes")
        if not 1 <= self.quality <= 100:
            raise ValueError("quality must be between 1 and 100")
        if self.max_width < 1 or self.max_height < 1:
            raise ValueError("max_width and max_height must be positive")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        env = os.environ if env is None else env
        origins = env.get("GATEWAY_ALLOWED_ORIGINS", "*")
        return cls(
            max_file_size=int(env.get("GATEWAY_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE)),
            quality=int(env.get("GATEWAY_QUALITY", 80)),
            max_width=int(env.get("GATEWAY_MAX_WIDTH", 1200)),
            max_height=int(env.get("GATEWAY_MAX_HEIGHT", 1200)),
            cache_max_age=int(env.get("GATEWAY_CACHE_MAX_AGE", CACHE_MAX_AGE)),
            region=env.get("GATEWAY_REGION", "local"),
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )
