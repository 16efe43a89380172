"""
Emulator configuration management
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from emulator.models import ProtocolMode, WorkType

# setting name -> (enum, fallback) for values coerced instead of rejected
_COERCED_SETTINGS = {
    "work_type": (WorkType, WorkType.ON_OFF),
    "protocol": (ProtocolMode, ProtocolMode.CLIENT),
}


class Settings(BaseSettings):
    """Reader emulator settings"""

    # Listener
    ip: str = "0.0.0.0"
    port: int = Field(default=1001, ge=0, le=65535)

    # Device identity and behaviour
    reader_id: int = Field(default=150, ge=0, le=255)
    random_card_reads: bool = False
    log_requests: bool = False
    work_type: WorkType = WorkType.ON_OFF
    protocol: ProtocolMode = ProtocolMode.CLIENT

    # Logging
    log_dir: Optional[Path] = None
    log_level: str = "INFO"
    json_logs: bool = False

    # Out-of-range values replaced by their fallback; logged once logging is up
    coercions: List[Dict[str, Any]] = Field(default_factory=list, exclude=True)

    class Config:
        env_prefix = "AKSREADER_"
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _coerce_modes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        coercions = []
        for name, (enum, fallback) in _COERCED_SETTINGS.items():
            if name not in data:
                continue
            try:
                data[name] = enum(int(data[name]))
            except (TypeError, ValueError):
                coercions.append({
                    "setting": name,
                    "value": data[name],
                    "allowed": [member.value for member in enum],
                    "fallback": fallback.value,
                })
                data[name] = fallback
        data["coercions"] = coercions
        return data
