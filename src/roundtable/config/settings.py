"""Service configuration loaded from JSON with environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import orjson
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("config/roundtable.json")
ENV_PREFIX = "ROUNDTABLE_"


class ServiceConfig(BaseModel):
    """Settings for the session service, web API and CLI."""

    seed: Optional[int] = Field(None, description="Seed for role shuffles; random when unset")
    max_message_length: int = Field(500, ge=1, description="Chat messages are trimmed to this length")
    redact_roles: bool = Field(True, description="Hide other players' roles in the detail projection")
    snapshot_dir: Optional[Path] = Field(None, description="Directory for JSON session snapshots")
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for field_name in ServiceConfig.model_fields:
        raw = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if raw is None or raw == "":
            continue
        if field_name == "cors_origins":
            overrides[field_name] = [origin.strip() for origin in raw.split(",") if origin.strip()]
        else:
            overrides[field_name] = raw
    return overrides


def load_service_config(
    path: Path = DEFAULT_CONFIG_PATH,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ServiceConfig:
    """Load configuration from disk, falling back to defaults, then apply ``ROUNDTABLE_*`` variables."""

    data: Dict[str, Any] = {}
    if path.exists():
        data = orjson.loads(path.read_bytes())
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
    data.update(_env_overrides(os.environ if environ is None else environ))
    return ServiceConfig.model_validate(data)
