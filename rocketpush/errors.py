"""Error kinds raised by the client and the exception that carries them."""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    """Well-known client failures, each with its fixed message."""

    REQUEST_TIMEOUT = "request timeout"
    MQ_EMPTY = "MessageQueue is nil"
    OFFSET = "offset < 0"
    NUMBERS = "numbers < 0"
    EMPTY_TOPIC = "empty topic"
    EMPTY_NAME_SRV = "empty namesrv"
    EMPTY_GROUP_ID = "empty group id"
    TEST_MIN = "test minutes must be positive integer"
    OPERATION_INTERVAL = "operation interval must be positive integer"
    MESSAGE_BODY = "message body size must be positive integer"
    EMPTY_EXPRESSION = "empty expression"
    CREATED = "consumer group has been created"
    BROKER_NOT_FOUND = "broker can not found"
    START_TOPIC = (
        "cannot subscribe topic since client either failed to start or has been shutdown."
    )
    SUBSCRIPTION_TYPE = "subscribe type is not matched"
    BLANK_SUB_TYPE = "subscribe type should not be blank"
    RESPONSE = "response error"
    COMPRESS_LEVEL = "unsupported compress level"
    UNKNOWN_IP = "unknown IP address"
    SERVICE = "service close is not running, please check"
    TOPIC_NOT_EXIST = "topic not exist"
    ROUTE_NOT_FOUND = "topic route not found"
    NOT_EXISTED = "not existed"
    NO_NAMESERVER = "nameServerAddrs can't be empty."
    MULTI_IP = "multiple IP addr does not support"
    ILLEGAL_IP = "IP addr error"
    TOPIC_EMPTY = "topic is nil"
    MESSAGE_EMPTY = "message is nil"
    NOT_RUNNING = "producer not started"
    PULL_CONSUMER = "pull consumer has not supported"
    PRODUCER_CREATED = "producer group has been created"
    MULTIPLE_TOPICS = "the topic of the messages in one batch should be the same"


class MQClientError(Exception):
    """A client failure of a known kind, optionally with extra detail."""

    def __init__(self, kind: ErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        message = kind.value if not detail else f"{kind.value}: {detail}"
        super().__init__(message)