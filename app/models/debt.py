"""
Debt model - money a user owes to a named loaner.

Design principles:
- All amounts in integer cents (minor units)
- amount is fixed at creation, only payments/credited/completed evolve
- payments is append-only, in the order they were applied
- credited is the running total the store compare-and-sets on, so
  sum(payments) <= credited <= amount holds under concurrent payments
"""

from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.base import _utcnow


class PaymentRef(BaseModel):
    """Reference to a Transaction recorded by the transaction service."""
    transaction_id: str
    amount: int  # credited cents

    @field_validator("transaction_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if isinstance(value, ObjectId) else value


class Debt(BaseModel):
    """
    Invariants:
    - 0 <= sum(p.amount for p in payments) <= credited <= amount
    - completed iff the applied payments reach amount
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, validation_alias="_id", serialization_alias="id")

    user_id: str
    loaner: str
    amount: int
    concept: str
    date: str  # YYYY-MM-DD

    payments: List[PaymentRef] = Field(default_factory=list)
    completed: bool = False
    credited: int = 0
    version: int = 0

    created_at: datetime = Field(
        default_factory=_utcnow,
        validation_alias="createdAt",
        serialization_alias="createdAt",
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if isinstance(value, ObjectId) else value

    def total_paid(self) -> int:
        """Sum of the payments already applied."""
        return sum(payment.amount for payment in self.payments)

    def open_amount(self) -> int:
        """How much can still be credited."""
        return self.amount - max(self.credited, self.total_paid())

    def to_document(self) -> dict:
        """Mongo document without the id, using the stored key names."""
        return self.model_dump(by_alias=True, exclude={"id"})

    def to_payload(self) -> dict:
        """JSON-friendly representation sent back over the bus."""
        return self.model_dump(by_alias=True, mode="json")
