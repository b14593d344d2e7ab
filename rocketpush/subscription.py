"""Subscriptions, selectors and the context handed to consume callbacks."""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from .message import MessageExt, MessageQueue
from .options import ConsumeResult

SUB_ALL = "*"

PROP_CTX_TYPE = "ConsumeContextType"
CONSUMER_PUSH = "ConsumerPush"

RETURN_SUCCESS = "SUCCESS"
RETURN_TIMEOUT = "TIME_OUT"
RETURN_EXCEPTION = "EXCEPTION"
RETURN_NULL = "RETURNNULL"
RETURN_FAILED = "FAILED"

DIRECT_SUCCESS = "CR_SUCCESS"
DIRECT_LATER = "CR_LATER"
DIRECT_ROLLBACK = "CR_ROLLBACK"
DIRECT_COMMIT = "CR_COMMIT"
DIRECT_THROW_EXCEPTION = "CR_THROW_EXCEPTION"
DIRECT_RETURN_NULL = "CR_RETURN_NULL"

Invoker = Callable[[Any, Any, Any], None]
Interceptor = Callable[[Any, Any, Any, Invoker], None]


class ExpressionType(enum.Enum):
    """The language of a subscription expression."""

    TAG = "TAG"
    SQL92 = "SQL92"


@dataclass(frozen=True)
class MessageSelector:
    """Which messages of a topic to receive; an empty expression means all."""

    type: Optional[ExpressionType] = None
    expression: str = ""


@dataclass(eq=False)
class SubscriptionData:
    """What a consumer has subscribed to on one topic."""

    topic: str
    sub_string: str = ""
    expression_type: Optional[ExpressionType] = None
    tags: list[str] = field(default_factory=list)
    sub_version: int = 0
    class_filter_mode: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def update_version(self, version: int) -> None:
        """Replace the subscription version under the lock."""
        with self.lock:
            self.sub_version = version


def build_subscription_data(topic: str, selector: MessageSelector) -> SubscriptionData:
    """Turn a selector into subscription data, splitting a tag expression on ``||``."""
    data = SubscriptionData(
        topic=topic,
        sub_string=selector.expression,
        expression_type=selector.type,
        sub_version=time.time_ns(),
    )
    if selector.type is not None and selector.type is not ExpressionType.TAG:
        return data

    if selector.expression in ("", SUB_ALL):
        data.expression_type = ExpressionType.TAG
        data.sub_string = SUB_ALL
        return data

    for tag in (part.strip(" ") for part in selector.expression.split("||")):
        if tag and tag not in data.tags:
            data.tags.append(tag)
    return data


@dataclass
class ConsumeContext:
    """What a consume callback learns about, and may adjust for, its batch."""

    consumer_group: str = ""
    mq: Optional[MessageQueue] = None
    msgs: list[MessageExt] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    method: str = CONSUMER_PUSH
    success: bool = False
    orderly: bool = False
    delay_level_when_next_consume: int = 0
    suspend_current_queue_time_millis: int = -1


@dataclass
class ConsumeResultHolder:
    """Receives the callback's result when it runs through interceptors."""

    consume_result: Optional[ConsumeResult] = None


@dataclass
class DirectConsumeResult:
    """Outcome of consuming one message on a broker's direct request."""

    order: bool = False
    auto_commit: bool = True
    consume_result: str = ""
    remark: str = ""
    spent_time_millis: int = 0


def chain_interceptors(interceptors: Sequence[Interceptor]) -> Optional[Interceptor]:
    """Compose interceptors so the first given runs outermost.

    Returns None when there are none, and the interceptor itself when there is one.
    """
    chain = list(interceptors)
    if not chain:
        return None
    if len(chain) == 1:
        return chain[0]

    def chained(ctx: Any, request: Any, reply: Any, invoker: Invoker) -> None:
        def call(position: int, ctx: Any, request: Any, reply: Any) -> None:
            if position == len(chain):
                invoker(ctx, request, reply)
                return
            chain[position](
                ctx,
                request,
                reply,
                lambda c, r, p: call(position + 1, c, r, p),
            )

        call(0, ctx, request, reply)

    return chained