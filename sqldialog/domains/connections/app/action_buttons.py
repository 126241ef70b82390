"""Handlers behind the action buttons shown next to form fields."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from sqldialog.domains.connections.domain.fields import ActionButton

logger = logging.getLogger(__name__)

ButtonHandler = Callable[[], Awaitable[None]]

AZURE_SIGN_IN = "azureSignIn"
REFRESH_TOKEN = "refreshToken"


class ActionButtonRegistry:
    """Maps (field name, button id) to the coroutine run when it is pressed."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], ButtonHandler] = {}

    def register(self, field_name: str, button: ActionButton, handler: ButtonHandler) -> ActionButton:
        self._handlers[(field_name, button.id)] = handler
        return button

    def clear(self, field_name: str) -> None:
        for key in [key for key in self._handlers if key[0] == field_name]:
            del self._handlers[key]

    def get(self, field_name: str, button_id: str) -> ButtonHandler | None:
        return self._handlers.get((field_name, button_id))

    async def invoke(self, field_name: str, button_id: str) -> bool:
        """Run the handler for a pressed button; False if none is registered."""
        handler = self.get(field_name, button_id)
        if handler is None:
            logger.debug("No handler for button %s on %s", button_id, field_name)
            return False
        await handler()
        return True
