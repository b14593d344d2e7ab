"""Message queues and received messages."""

from __future__ import annotations

from dataclasses import dataclass, field

PROPERTY_RETRY_TOPIC = "RETRY_TOPIC"
PROPERTY_CONSUME_START_TIME = "CONSUME_START_TIME"


@dataclass(frozen=True)
class MessageQueue:
    """One queue of a topic on a broker; usable as a dictionary key."""

    topic: str = ""
    broker_name: str = ""
    queue_id: int = 0

    def __str__(self) -> str:
        return (
            f"MessageQueue [topic={self.topic}, brokerName={self.broker_name}, "
            f"queueId={self.queue_id}]"
        )


@dataclass
class MessageExt:
    """A message as delivered by a broker, with its queue position and properties."""

    topic: str = ""
    body: bytes = b""
    msg_id: str = ""
    queue: MessageQueue = field(default_factory=MessageQueue)
    queue_offset: int = 0
    reconsume_times: int = 0
    commit_log_offset: int = 0
    store_host: str = ""
    born_timestamp: int = 0
    properties: dict[str, str] = field(default_factory=dict)

    def get_property(self, name: str) -> str:
        """Return the property's value, or an empty string when it is unset."""
        return self.properties.get(name, "")

    def with_property(self, name: str, value: str) -> None:
        """Set a property, replacing any earlier value."""
        self.properties[name] = value