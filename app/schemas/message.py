import json
from typing import Any, Optional

from pydantic import BaseModel


class WorkerMessage(BaseModel):
    """Envelope exchanged over the message bus: ``{type, status, payload}``."""

    type: str
    status: int = 200
    payload: Any = None

    @classmethod
    def error_message(cls, message: str, status: int = 400, errors: Optional[Any] = None) -> "WorkerMessage":
        payload = {"message": message}
        if errors is not None:
            payload["error"] = errors
        return cls(type="Error", status=status, payload=payload)

    @classmethod
    def from_body(cls, body: bytes) -> "WorkerMessage":
        return cls.model_validate(json.loads(body))

    def to_body(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @property
    def ok(self) -> bool:
        return self.status == 200
