# history.py
# Conversation state for one logical conversation.
#
# Overflow policy is a full reset: once an append pushes the buffer past its
# capacity, the whole buffer is replaced by an empty one. Nothing is trimmed.

import logging
from collections.abc import Iterable

from mcp_relay.models import Message

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


class ConversationHistory:
    """Ordered message buffer with a bounded capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self._capacity = capacity
        self._messages: list[Message] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, message: Message) -> bool:
        """Append `message`. Returns False when the append overflowed and cleared the buffer."""
        self._messages.append(message)
        if len(self._messages) > self._capacity:
            # TODO: switch to a drop-oldest window once callers stop relying on the reset.
            logger.info(
                "History exceeded capacity %d; clearing %d messages.",
                self._capacity,
                len(self._messages),
            )
            self._messages = []
            return False
        return True

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def snapshot(self) -> tuple[Message, ...]:
        """Copies of the current messages. Mutating them never touches the buffer."""
        return tuple(m.model_copy(deep=True) for m in self._messages)

    def to_wire(self) -> list[dict]:
        return [m.to_wire() for m in self._messages]

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def discard_last(self) -> Message | None:
        """Remove and return the newest message, if any."""
        return self._messages.pop() if self._messages else None

    def reset(self) -> None:
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)
