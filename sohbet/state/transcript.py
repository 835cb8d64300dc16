"""Messages and the append-only transcript."""

import itertools
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class Sender(str, Enum):
    """Author of a message."""

    USER = "user"
    BOT = "bot"


# Process-wide source of message ids; strictly increasing, never reused
_message_ids = itertools.count(1)


def next_message_id() -> int:
    return next(_message_ids)


@dataclass(frozen=True)
class Message:
    """A single turn in the conversation."""

    text: str
    sender: Sender
    id: int = field(default_factory=next_message_id)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_user(self) -> bool:
        return self.sender is Sender.USER

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sender"] = self.sender.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            text=data["text"],
            sender=Sender(data["sender"]),
            id=data["id"],
            created_at=data.get("created_at", ""),
        )


class Transcript:
    """
    Ordered log of messages.

    Insertion order is render order. Messages are only ever appended;
    ``clear`` exists for a full session reset.
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: List[Message] = list(messages or [])

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def snapshot(self) -> List[Message]:
        """Copy of the current messages."""
        return list(self._messages)

    def to_list(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self._messages]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "Transcript":
        return cls([Message.from_dict(item) for item in data])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __repr__(self) -> str:
        return f"Transcript({len(self._messages)} messages)"
