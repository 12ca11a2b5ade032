"""
Cross-window message channel.

The redirect target posts the authorization response here; the handshake
coordinator listens only while a handshake is in progress.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger(__name__)


@dataclass
class WindowMessage:
    """A message delivered from another window."""
    origin: str
    data: Dict[str, Any] = field(default_factory=dict)


MessageListener = Callable[[WindowMessage], None]


class MessageChannel:
    """Delivers posted messages to the currently registered listeners."""

    def __init__(self):
        self._listeners: List[MessageListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def listen(self, listener: MessageListener) -> Iterator[None]:
        """Register ``listener`` for the duration of the block."""
        self.add_listener(listener)
        try:
            yield
        finally:
            self.remove_listener(listener)

    def post(self, message: WindowMessage) -> int:
        """
        Deliver a message to every listener.

        Returns:
            Number of listeners the message was delivered to
        """
        listeners = list(self._listeners)
        if not listeners:
            logger.debug(f"Dropping message from {message.origin}: no listeners")
        for listener in listeners:
            listener(message)
        return len(listeners)
