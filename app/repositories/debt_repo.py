"""
DebtRepository - Persists debts and applies payments.

Concurrent payments against one debt are serialized through the store:
1. reserve_credit compare-and-sets ``credited`` on the value read
2. the transaction is recorded by the transaction service
3. append_payment pushes the reference (or release_credit undoes step 1)
"""

from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.models.base import to_object_id
from app.models.debt import Debt, PaymentRef


class DebtRepository:
    """Repository for debts."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["debts"]

    async def create_indexes(self) -> None:
        await self.collection.create_index("user_id")

    async def add(self, debt: Debt) -> Debt:
        """Insert a new debt. Payments, credit and status always start empty."""
        doc = debt.model_copy(update={
            "payments": [],
            "completed": False,
            "credited": 0,
            "version": 0,
            "created_at": datetime.now(timezone.utc),
        }).to_document()

        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return Debt(**doc)

    async def get_by_id(self, debt_id: str) -> Optional[Debt]:
        oid = to_object_id(debt_id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid})
        if doc:
            return Debt(**doc)
        return None

    async def get_owned(self, debt_id: str, user_id: str) -> Optional[Debt]:
        """Get a debt only if it belongs to the user."""
        oid = to_object_id(debt_id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid, "user_id": user_id})
        if doc:
            return Debt(**doc)
        return None

    async def reserve_credit(self, debt: Debt, credit: int) -> bool:
        """
        Atomically add ``credit`` to the debt's credited total.

        Succeeds only if no other payment reserved credit since the debt was
        read and the new total stays within the debt amount. Returns False
        on a lost race.
        """
        result = await self.collection.update_one(
            {
                "_id": to_object_id(debt.id),
                "credited": debt.credited,
                "amount": {"$gte": debt.credited + credit},
            },
            {"$inc": {"credited": credit, "version": 1}},
        )
        return result.modified_count == 1

    async def release_credit(self, debt_id: str, credit: int) -> None:
        """Undo a reservation whose transaction could not be recorded."""
        await self.collection.update_one(
            {"_id": to_object_id(debt_id)},
            {"$inc": {"credited": -credit, "version": 1}},
        )

    async def append_payment(self, debt_id: str, payment: PaymentRef) -> Optional[Debt]:
        """
        Push a payment reference, marking the debt completed once the
        applied payments reach its amount.

        Completion is decided on the stored document, not on the caller's
        copy, so the last of several concurrent payments flips it.
        """
        oid = to_object_id(debt_id)
        result = await self.collection.find_one_and_update(
            {"_id": oid},
            {
                "$push": {"payments": payment.model_dump()},
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            return None

        debt = Debt(**result)
        if debt.completed or debt.total_paid() < debt.amount:
            return debt

        completed = await self.collection.find_one_and_update(
            {"_id": oid, "completed": False},
            {"$set": {"completed": True}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if completed:
            return Debt(**completed)
        return debt.model_copy(update={"completed": True})
