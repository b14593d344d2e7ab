"""Push consumer settings, their validation and the values derived from them."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import ErrorKind, MQClientError

DEFAULT_CONSUMER_GROUP = "DEFAULT_CONSUMER"

_MAX_INT32 = 2**31 - 1
_DEFAULT_RETRY_RECONSUME_TIMES = 16
_MIN_SUSPEND_MILLIS = 10
_MAX_SUSPEND_MILLIS = 30000


class MessageModel(enum.Enum):
    """How messages of a topic are shared among the consumers of a group."""

    BROADCASTING = "BroadCasting"
    CLUSTERING = "Clustering"

    def __str__(self) -> str:
        return self.value


class ConsumeFromWhere(enum.Enum):
    """Where a new consumer group starts reading a queue."""

    LAST_OFFSET = 0
    FIRST_OFFSET = 1
    TIMESTAMP = 2


_WHERE_NAMES = {
    ConsumeFromWhere.LAST_OFFSET: "CONSUME_FROM_LAST_OFFSET",
    ConsumeFromWhere.FIRST_OFFSET: "CONSUME_FROM_FIRST_OFFSET",
    ConsumeFromWhere.TIMESTAMP: "CONSUME_FROM_TIMESTAMP",
}


class ConsumeResult(enum.Enum):
    """What a consume callback reports for a batch of messages."""

    CONSUME_SUCCESS = "ConsumeSuccess"
    CONSUME_RETRY_LATER = "ConsumeRetryLater"
    COMMIT = "Commit"
    ROLLBACK = "Rollback"
    SUSPEND_CURRENT_QUEUE_A_MOMENT = "SuspendCurrentQueueAMoment"


def validate_group(group: str) -> None:
    """Reject an empty consumer group name."""
    if not group:
        raise MQClientError(ErrorKind.EMPTY_GROUP_ID)


def _truncating_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _check_range(value: int, low: int, high: int, default: int, name: str) -> int:
    """Return the value, or its default when zero; raise when out of range."""
    if low <= value <= high:
        return value
    if value == 0:
        return default
    raise ValueError(f"option.{name} out of range [{low}, {high}]")


@dataclass
class ConsumerOptions:
    """Settings of a push consumer; zero for a limit means use its default."""

    group_name: str = ""
    namespace: str = ""
    instance_name: str = "DEFAULT"
    model: MessageModel = MessageModel.CLUSTERING
    from_where: ConsumeFromWhere = ConsumeFromWhere.LAST_OFFSET
    consume_orderly: bool = False
    auto_commit: bool = True
    unit_mode: bool = False
    post_subscription_when_pull: bool = False
    consume_concurrently_max_span: int = 0
    pull_threshold_for_queue: int = 0
    pull_threshold_for_topic: int = 0
    pull_threshold_size_for_queue: int = 0
    pull_threshold_size_for_topic: int = 0
    pull_interval_ms: int = 0
    consume_message_batch_max_size: int = 0
    pull_batch_size: int = 0
    consume_concurrency: int = 0
    max_reconsume_times: int = -1
    suspend_current_queue_time_millis: int = 1000
    consume_timeout: float = 15 * 60.0
    max_time_consume_continuously: float = 60.0
    rebalance_lock_interval: float = 20.0

    def validate(self, consumer_group: str) -> None:
        """Check the group name and every limit, filling zero limits with defaults."""
        validate_group(consumer_group)
        if consumer_group == DEFAULT_CONSUMER_GROUP:
            raise ValueError(
                f"consumerGroup can't equal [{DEFAULT_CONSUMER_GROUP}], "
                "please specify another one"
            )

        self.consume_concurrently_max_span = _check_range(
            self.consume_concurrently_max_span, 1, 65535, 1000,
            "ConsumeConcurrentlyMaxSpan",
        )
        self.pull_threshold_for_queue = _check_range(
            self.pull_threshold_for_queue, 1, 65535, 1024, "PullThresholdForQueue"
        )
        self.pull_threshold_for_topic = _check_range(
            self.pull_threshold_for_topic, 1, 6553500, 102400, "PullThresholdForTopic"
        )
        self.pull_threshold_size_for_queue = _check_range(
            self.pull_threshold_size_for_queue, 1, 1024, 512, "PullThresholdSizeForQueue"
        )
        self.pull_threshold_size_for_topic = _check_range(
            self.pull_threshold_size_for_topic, 1, 102400, 51200,
            "PullThresholdSizeForTopic",
        )
        if not 0 <= self.pull_interval_ms <= 65535:
            raise ValueError("option.PullInterval out of range [0, 65535]")
        self.consume_message_batch_max_size = _check_range(
            self.consume_message_batch_max_size, 1, 1024, 1,
            "ConsumeMessageBatchMaxSize",
        )
        self.pull_batch_size = _check_range(
            self.pull_batch_size, 1, 1024, 32, "PullBatchSize"
        )
        self.consume_concurrency = _check_range(
            self.consume_concurrency, 1, 100000, 20, "ConsumeGoroutineNums"
        )

    def max_reconsume_times_for_retry(self) -> int:
        """Reconsume limit sent to the broker with a message sent back."""
        if self.max_reconsume_times == -1:
            return _DEFAULT_RETRY_RECONSUME_TIMES
        return self.max_reconsume_times

    def orderly_max_reconsume_times(self) -> int:
        """Reconsume limit for orderly consumption; unlimited when unset."""
        if self.max_reconsume_times == -1:
            return _MAX_INT32
        return self.max_reconsume_times

    def suspend_time_millis(self, requested: int) -> int:
        """Delay before reconsuming a queue, clamped to [10, 30000] ms; -1 means default."""
        if requested == -1:
            requested = self.suspend_current_queue_time_millis
        return max(_MIN_SUSPEND_MILLIS, min(_MAX_SUSPEND_MILLIS, requested))

    def rebalance_thresholds(self, queue_count: int) -> tuple[int, int]:
        """Spread the topic-wide pull thresholds over the queues now held.

        Returns the per-queue message count and size thresholds after the change.
        """
        if queue_count > 0:
            if self.pull_threshold_for_topic != -1:
                share = _truncating_div(self.pull_threshold_for_topic, queue_count)
                self.pull_threshold_for_queue = share or 1
            if self.pull_threshold_size_for_topic != -1:
                share = _truncating_div(self.pull_threshold_size_for_topic, queue_count)
                self.pull_threshold_size_for_queue = share or 1
        return self.pull_threshold_for_queue, self.pull_threshold_size_for_queue

    def where_name(self) -> str:
        """The wire name of the starting position."""
        return _WHERE_NAMES.get(self.from_where, "UNKNOWN")