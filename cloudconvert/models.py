from dataclasses import dataclass, field
from typing import Any, Dict, Optional

FINISHED_STEP = "finished"
ERROR_STEP = "error"


def _string(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _nested_string(data: Dict[str, Any], key: str, nested_key: str) -> Optional[str]:
    nested = data.get(key)
    if not isinstance(nested, dict):
        return None
    return _string(nested.get(nested_key))


@dataclass(frozen=True)
class ProcessSnapshot:
    """
    Typed view of a process status document returned by the API.

    Every field falls back to None when the server omitted it or sent an
    unexpected type; the untouched document stays available as `raw`.
    """

    url: Optional[str] = None
    id: Optional[str] = None
    step: Optional[str] = None
    percent: Optional[float] = None
    message: Optional[str] = None
    upload_url: Optional[str] = None
    output_url: Optional[str] = None
    output_filename: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data) -> "ProcessSnapshot":
        if not isinstance(data, dict):
            return cls()
        return cls(
            url=_string(data.get("url")),
            id=_string(data.get("id")),
            step=_string(data.get("step")),
            percent=_number(data.get("percent")),
            message=_string(data.get("message")),
            upload_url=_nested_string(data, "upload", "url"),
            output_url=_nested_string(data, "output", "url"),
            output_filename=_nested_string(data, "output", "filename"),
            raw=dict(data),
        )

    @property
    def is_finished(self) -> bool:
        return self.step == FINISHED_STEP

    @property
    def is_error(self) -> bool:
        return self.step == ERROR_STEP

    def get(self, name, default=None):
        return self.raw.get(name, default)
