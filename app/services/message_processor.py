"""Message Processor: routes a message's ``type`` to its handler.

Every mapping is listed in ``self._handlers``. Whatever happens inside a
handler, ``process`` answers with a well-formed ``WorkerMessage``; nothing
propagates to the transport.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Tuple, Type

from pydantic import BaseModel, ValidationError

from app.core.errors import DebtWorkerError, InternalError, InvalidFieldsError, UnsupportedOperationError
from app.models.debt import Debt
from app.schemas.message import WorkerMessage
from app.schemas.requests import WorkerCreateDebt, WorkerPayDebt
from app.services.debt_service import DebtService

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Debt]]


def field_errors(exc: ValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into ``{field: message}``."""
    errors = {}
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"]) or "payload"
        errors.setdefault(name, error["msg"])
    return errors


class MessageProcessor:
    """Explicit ``type -> (request schema, handler)`` routing."""

    def __init__(self, service: DebtService):
        self._handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "add": (WorkerCreateDebt, service.add_debt),
            "debt-payment": (WorkerPayDebt, service.pay_debt),
        }

    @property
    def supported_types(self) -> frozenset:
        return frozenset(self._handlers)

    async def process(self, message: Any) -> WorkerMessage:
        """Handle one inbound ``{type, payload}`` message."""
        if isinstance(message, WorkerMessage):
            message = message.model_dump()
        if not isinstance(message, dict):
            return WorkerMessage.error_message("Message must be an object with type and payload")

        message_type = message.get("type")
        route = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if route is None:
            logger.debug(f"Unsupported function type: {message_type}")
            return UnsupportedOperationError(message_type).to_message()

        schema, handler = route
        try:
            request = schema.model_validate(message.get("payload") or {})
        except ValidationError as exc:
            return InvalidFieldsError(field_errors(exc)).to_message()

        try:
            debt = await handler(request)
        except DebtWorkerError as exc:
            logger.log(
                logging.ERROR if exc.status >= 500 else logging.INFO,
                f"{message_type} failed: {exc.message}",
                extra={"message_type": message_type, "status": exc.status},
            )
            return exc.to_message()
        except Exception as exc:
            logger.exception(
                f"Unexpected error handling {message_type}",
                extra={"message_type": message_type},
            )
            return InternalError.from_exception(exc).to_message()

        return WorkerMessage(type=message_type, status=200, payload=debt.to_payload())
