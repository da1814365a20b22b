import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from app.core.config import WorkerConfig
from app.models.debt import Debt, PaymentRef
from app.schemas.message import WorkerMessage
from app.services.debt_service import DebtService
from app.services.message_processor import MessageProcessor


class InMemoryDebtRepository:
    """DebtRepository stand-in honouring the same compare-and-set rules."""

    def __init__(self):
        self.docs: Dict[str, dict] = {}
        self.reserve_calls = 0

    def insert(self, debt: Debt) -> Debt:
        debt_id = str(ObjectId())
        self.docs[debt_id] = debt.model_copy(update={"id": debt_id}).model_dump()
        return self.get(debt_id)

    def get(self, debt_id: str) -> Optional[Debt]:
        doc = self.docs.get(debt_id)
        return Debt(**doc) if doc else None

    async def add(self, debt: Debt) -> Debt:
        return self.insert(debt.model_copy(update={
            "payments": [], "completed": False, "credited": 0, "version": 0,
            "created_at": datetime.now(timezone.utc),
        }))

    async def get_by_id(self, debt_id: str) -> Optional[Debt]:
        await asyncio.sleep(0)
        return self.get(debt_id)

    async def get_owned(self, debt_id: str, user_id: str) -> Optional[Debt]:
        debt = await self.get_by_id(debt_id)
        return debt if debt and debt.user_id == user_id else None

    async def reserve_credit(self, debt: Debt, credit: int) -> bool:
        self.reserve_calls += 1
        await asyncio.sleep(0)
        doc = self.docs.get(debt.id)
        if (
            doc is None
            or doc["credited"] != debt.credited
            or doc["amount"] < debt.credited + credit
        ):
            return False
        doc["credited"] += credit
        doc["version"] += 1
        return True

    async def release_credit(self, debt_id: str, credit: int) -> None:
        doc = self.docs[debt_id]
        doc["credited"] -= credit
        doc["version"] += 1

    async def append_payment(self, debt_id: str, payment: PaymentRef) -> Optional[Debt]:
        doc = self.docs.get(debt_id)
        if doc is None:
            return None
        doc["payments"].append(payment.model_dump())
        doc["version"] += 1
        if sum(p["amount"] for p in doc["payments"]) >= doc["amount"]:
            doc["completed"] = True
        return self.get(debt_id)


class FakeRequestor:
    """Transaction service stand-in: answers every request with a new transaction."""

    def __init__(self):
        self.requests: List[tuple] = []
        self.reply: Optional[WorkerMessage] = None
        self.error: Optional[Exception] = None

    async def send_with_response(self, queue, type, payload) -> WorkerMessage:
        self.requests.append((queue, type, payload))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        return WorkerMessage(type="add", status=200, payload={"_id": str(ObjectId()), **payload})


@pytest.fixture
def repo():
    return InMemoryDebtRepository()


@pytest.fixture
def requestor():
    return FakeRequestor()


@pytest.fixture
def worker_config():
    return WorkerConfig(transaction_queue="transactionQueue", other_category_id_out="cat-out")


@pytest.fixture
def service(repo, requestor, worker_config):
    return DebtService(repo, requestor, worker_config)


@pytest.fixture
def processor(service):
    return MessageProcessor(service)


@pytest.fixture
def make_debt(repo):
    """Store a debt; ``paid`` lists the cents of payments already applied."""
    def _make(amount=1000, paid=(), user_id="u1", concept="Lunch", completed=False):
        payments = [PaymentRef(transaction_id=str(ObjectId()), amount=cents) for cents in paid]
        return repo.insert(Debt(
            user_id=user_id,
            loaner="Bob",
            amount=amount,
            concept=concept,
            date="2024-02-29",
            payments=payments,
            credited=sum(paid),
            completed=completed,
        ))
    return _make


@pytest.fixture
def mock_db():
    """Motor database whose ``debts`` collection is an AsyncMock."""
    db = MagicMock()
    collection = MagicMock()
    collection.insert_one = AsyncMock()
    collection.find_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.find_one_and_update = AsyncMock()
    collection.create_index = AsyncMock()
    db.__getitem__.return_value = collection
    return db
