"""Payloads accepted by the worker, keyed by message type.

Only the identifiers are required here. The free-form fields stay loose so
that the field validators, not pydantic, decide what a bad amount or an
empty concept looks like.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class WorkerRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    user_id: str

    @field_validator("user_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class WorkerCreateDebt(WorkerRequest):
    """Payload of an ``add`` message."""
    loaner: Optional[str] = None
    amount: Any = None
    concept: Optional[str] = None
    date: Optional[str] = None


class WorkerPayDebt(WorkerRequest):
    """Payload of a ``debt-payment`` message."""
    debt_id: str
    amount: Any = None
