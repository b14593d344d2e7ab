"""A push consumer: subscriptions, callback dispatch and consumption bookkeeping."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Container, Iterable, Optional, Sequence

from .errors import ErrorKind, MQClientError
from .message import (
    PROPERTY_CONSUME_START_TIME,
    PROPERTY_RETRY_TOPIC,
    MessageExt,
    MessageQueue,
)
from .options import ConsumeResult, ConsumerOptions, MessageModel
from .statistics import StatsManager
from .subscription import (
    DIRECT_LATER,
    DIRECT_SUCCESS,
    DIRECT_THROW_EXCEPTION,
    PROP_CTX_TYPE,
    RETURN_EXCEPTION,
    RETURN_FAILED,
    RETURN_SUCCESS,
    ConsumeContext,
    ConsumeResultHolder,
    DirectConsumeResult,
    Interceptor,
    MessageSelector,
    SubscriptionData,
    build_subscription_data,
    chain_interceptors,
)

logger = logging.getLogger(__name__)

RETRY_GROUP_TOPIC_PREFIX = "%RETRY%"
PROPERTY_RECONSUME_TIME = "RECONSUME_TIME"

ConsumeCallback = Callable[[ConsumeContext, list], ConsumeResult]
SendBack = Callable[[str, MessageExt, int], bool]

_registry_lock = threading.Lock()
_registered_groups: set[str] = set()


class _State(enum.Enum):
    CREATE_JUST = "CreateJust"
    RUNNING = "Running"
    START_FAILED = "StartFailed"
    SHUTDOWN = "Shutdown"


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def retry_topic(group: str) -> str:
    """The retry topic of a consumer group."""
    return RETRY_GROUP_TOPIC_PREFIX + group


class PushConsumer:
    """Consumer that feeds subscribed messages to registered callbacks."""

    def __init__(
        self,
        options: ConsumerOptions,
        interceptors: Sequence[Interceptor] = (),
    ) -> None:
        self.options = options
        group = options.group_name
        if options.namespace:
            group = f"{options.namespace}%{group}"
        self.consumer_group = group
        self.stats = StatsManager(start_timers=False)
        self.paused = False
        self.consumer_start_timestamp = 0
        self._interceptor = chain_interceptors(list(interceptors))
        self._subscriptions: dict[str, SubscriptionData] = {}
        self._subscribed_topics: set[str] = set()
        self._callbacks: dict[str, ConsumeCallback] = {}
        self._lock = threading.Lock()
        self._state = _State.CREATE_JUST
        self._start_attempted = False
        self._closed = False
        self._registered = False

    @property
    def state(self) -> str:
        return self._state.value

    def _with_namespace(self, topic: str) -> str:
        if self.options.namespace:
            return f"{self.options.namespace}%{topic}"
        return topic

    def _first_start(self) -> None:
        logger.info(
            "the consumer start beginning: group=%s model=%s unitMode=%s",
            self.consumer_group,
            self.options.model,
            self.options.unit_mode,
        )
        self._state = _State.START_FAILED
        if not self._subscribed_topics:
            logger.warning("not subscribe any topic yet: group=%s", self.consumer_group)
        try:
            self.options.validate(self.consumer_group)
        except (ValueError, MQClientError) as err:
            logger.error(
                "the consumer group option validate fail: group=%s err=%s",
                self.consumer_group,
                err,
            )
            raise ValueError(f"the consumer group option validate fail: {err}") from err

        with _registry_lock:
            if self.consumer_group in _registered_groups:
                logger.error(
                    "the consumer group has been created, specify another one: %s",
                    self.consumer_group,
                )
                raise MQClientError(ErrorKind.CREATED)
            _registered_groups.add(self.consumer_group)
            self._registered = True

        self.consumer_start_timestamp = _now_millis()
        self._state = _State.RUNNING

    def start(self, topic_routes: Container[str] | Iterable[str] = ()) -> None:
        """Start consuming; every subscribed topic must have known route info."""
        with self._lock:
            first = not self._start_attempted
            self._start_attempted = True
        if first:
            self._first_start()

        known = topic_routes if isinstance(topic_routes, (set, frozenset, dict)) else set(
            topic_routes
        )
        with self._lock:
            topics = list(self._subscribed_topics)
        for topic in topics:
            if topic not in known:
                self.shutdown()
                raise MQClientError(
                    ErrorKind.ROUTE_NOT_FOUND,
                    f"the topic={topic} route info not found, it may not exist",
                )

    def shutdown(self) -> None:
        """Stop the consumer and release its group; later calls do nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._state = _State.SHUTDOWN
        if self._registered:
            with _registry_lock:
                _registered_groups.discard(self.consumer_group)
            self._registered = False
        self.stats.shutdown()

    def subscribe(
        self, topic: str, selector: MessageSelector, callback: ConsumeCallback
    ) -> None:
        """Register a callback for a topic's messages chosen by the selector."""
        if self._state in (_State.START_FAILED, _State.SHUTDOWN):
            raise MQClientError(ErrorKind.START_TOPIC)
        topic = self._with_namespace(topic)
        data = build_subscription_data(topic, selector)
        with self._lock:
            self._subscriptions[topic] = data
            self._subscribed_topics.add(topic)
            self._callbacks[topic] = callback

    def unsubscribe(self, topic: str) -> None:
        """Drop the subscription data of a topic."""
        topic = self._with_namespace(topic)
        with self._lock:
            self._subscriptions.pop(topic, None)

    def is_subscribed(self, topic: str) -> bool:
        """Whether subscription data is held for the topic."""
        topic = self._with_namespace(topic)
        with self._lock:
            return topic in self._subscriptions

    def suspend(self) -> None:
        """Pause pulling."""
        self.paused = True
        logger.info("suspend consumer: %s", self.consumer_group)

    def resume(self) -> None:
        """Resume pulling."""
        self.paused = False
        logger.info("resume consumer: %s", self.consumer_group)

    def reset_retry_and_namespace(self, messages: Iterable[MessageExt]) -> None:
        """Restore the original topic of retried messages and stamp the start time."""
        group_topic = retry_topic(self.consumer_group)
        begin = str(_now_millis())
        for msg in messages:
            original = msg.get_property(PROPERTY_RETRY_TOPIC)
            if original and msg.topic == group_topic:
                msg.topic = original
            msg.with_property(PROPERTY_CONSUME_START_TIME, begin)

    def _find_callback(self, msg: MessageExt) -> ConsumeCallback:
        with self._lock:
            callback = self._callbacks.get(msg.topic)
            if callback is None and msg.topic.startswith(RETRY_GROUP_TOPIC_PREFIX):
                callback = self._callbacks.get(msg.get_property(PROPERTY_RETRY_TOPIC))
        if callback is None:
            raise LookupError(f"the consume callback missing for topic: {msg.topic}")
        return callback

    def consume_inner(
        self, context: ConsumeContext, messages: Sequence[MessageExt]
    ) -> ConsumeResult:
        """Run the topic's callback on a batch, through the interceptors if any."""
        if not messages:
            raise ValueError("msg list empty")
        callback = self._find_callback(messages[0])
        if self._interceptor is None:
            return callback(context, list(messages))

        holder = ConsumeResultHolder()

        def invoke(ctx: ConsumeContext, request: list, reply: ConsumeResultHolder) -> None:
            result = callback(ctx, list(request))
            reply.consume_result = result
            ctx.success = result is ConsumeResult.CONSUME_SUCCESS
            ctx.properties[PROP_CTX_TYPE] = (
                RETURN_SUCCESS if ctx.success else RETURN_FAILED
            )

        self._interceptor(context, list(messages), holder, invoke)
        if holder.consume_result is None:
            return ConsumeResult.CONSUME_SUCCESS
        return holder.consume_result

    def consume_message_directly(
        self, message: MessageExt, broker_name: str
    ) -> DirectConsumeResult:
        """Consume one message at a broker's request and report the outcome."""
        msgs = [message]
        mq = MessageQueue(
            topic=message.topic, broker_name=broker_name, queue_id=message.queue.queue_id
        )
        begin = time.monotonic()
        self.reset_retry_and_namespace(msgs)
        ctx = ConsumeContext(consumer_group=self.consumer_group, mq=mq, msgs=msgs)
        outcome = DirectConsumeResult(order=False, auto_commit=True)

        try:
            result = self.consume_inner(ctx, msgs)
        except Exception as err:  # the callback's failure is reported, not raised
            ctx.properties[PROP_CTX_TYPE] = RETURN_EXCEPTION
            outcome.consume_result = DIRECT_THROW_EXCEPTION
            outcome.remark = str(err)
        else:
            if result is ConsumeResult.CONSUME_SUCCESS:
                ctx.properties[PROP_CTX_TYPE] = RETURN_SUCCESS
                outcome.consume_result = DIRECT_SUCCESS
            elif result is ConsumeResult.CONSUME_RETRY_LATER:
                ctx.properties[PROP_CTX_TYPE] = RETURN_FAILED
                outcome.consume_result = DIRECT_LATER

        spent = int((time.monotonic() - begin) * 1000)
        outcome.spent_time_millis = spent
        self.stats.increase_consume_rt(self.consumer_group, mq.topic, spent)
        return outcome

    def check_reconsume_times(
        self, messages: Sequence[MessageExt], send_back: SendBack
    ) -> bool:
        """Decide whether an orderly queue must pause for these messages.

        Messages over the reconsume limit are sent back to the broker; the queue
        pauses if any message stays local, and each such message's count rises.
        """
        suspend = False
        if not messages:
            return suspend
        limit = self.options.orderly_max_reconsume_times()
        for msg in messages:
            if msg.reconsume_times > limit:
                logger.warning(
                    "msg will be send to retry topic due to ReconsumeTimes > %d", limit
                )
                msg.with_property(PROPERTY_RECONSUME_TIME, str(msg.reconsume_times))
                if not send_back(msg.queue.broker_name, msg, -1):
                    suspend = True
                    msg.reconsume_times += 1
            else:
                suspend = True
                msg.reconsume_times += 1
        return suspend

    def message_queue_changed(
        self, topic: str, queue_count: int
    ) -> Optional[tuple[int, int]]:
        """Bump the topic's subscription version and rescale per-queue thresholds.

        Returns the new per-queue count and size thresholds, or None when the
        topic is not subscribed.
        """
        with self._lock:
            data = self._subscriptions.get(topic)
        if data is None:
            return None
        new_version = time.time_ns()
        logger.info(
            "the MessageQueue changed, version also updated: %s -> %s",
            data.sub_version,
            new_version,
        )
        data.update_version(new_version)
        return self.options.rebalance_thresholds(queue_count)

    @property
    def model(self) -> MessageModel:
        return self.options.model