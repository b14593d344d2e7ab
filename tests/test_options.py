import pytest

from rocketpush.errors import ErrorKind, MQClientError
from rocketpush.options import (
    DEFAULT_CONSUMER_GROUP,
    ConsumeFromWhere,
    ConsumerOptions,
    MessageModel,
    validate_group,
)


def test_validate_fills_defaults():
    opts = ConsumerOptions()
    opts.validate("testGroup")
    assert opts.consume_concurrently_max_span == 1000
    assert opts.pull_threshold_for_queue == 1024
    assert opts.pull_threshold_for_topic == 102400
    assert opts.pull_threshold_size_for_queue == 512
    assert opts.pull_threshold_size_for_topic == 51200
    assert opts.consume_message_batch_max_size == 1
    assert opts.pull_batch_size == 32
    assert opts.consume_concurrency == 20


def test_validate_keeps_values_in_range():
    opts = ConsumerOptions(pull_batch_size=7, consume_concurrency=3)
    opts.validate("testGroup")
    assert opts.pull_batch_size == 7
    assert opts.consume_concurrency == 3


@pytest.mark.parametrize(
    "field, value, message",
    [
        ("consume_concurrently_max_span", 65536, "ConsumeConcurrentlyMaxSpan out of range [1, 65535]"),
        ("pull_threshold_for_queue", -5, "PullThresholdForQueue out of range [1, 65535]"),
        ("pull_threshold_for_topic", 6553501, "PullThresholdForTopic out of range [1, 6553500]"),
        ("pull_threshold_size_for_queue", 1025, "PullThresholdSizeForQueue out of range [1, 1024]"),
        ("pull_threshold_size_for_topic", 102401, "PullThresholdSizeForTopic out of range [1, 102400]"),
        ("pull_interval_ms", -1, "PullInterval out of range [0, 65535]"),
        ("consume_message_batch_max_size", 1025, "ConsumeMessageBatchMaxSize out of range [1, 1024]"),
        ("pull_batch_size", 2000, "PullBatchSize out of range [1, 1024]"),
        ("consume_concurrency", 100001, "ConsumeGoroutineNums out of range [1, 100000]"),
    ],
)
def test_validate_rejects_out_of_range(field, value, message):
    opts = ConsumerOptions(**{field: value})
    with pytest.raises(ValueError) as info:
        opts.validate("testGroup")
    assert message in str(info.value)


def test_validate_rejects_default_group():
    with pytest.raises(ValueError) as info:
        ConsumerOptions().validate(DEFAULT_CONSUMER_GROUP)
    assert DEFAULT_CONSUMER_GROUP in str(info.value)


def test_validate_group_empty():
    with pytest.raises(MQClientError) as info:
        validate_group("")
    assert info.value.kind is ErrorKind.EMPTY_GROUP_ID


def test_reconsume_limits_when_unset():
    opts = ConsumerOptions(max_reconsume_times=-1)
    assert opts.max_reconsume_times_for_retry() == 16
    assert opts.orderly_max_reconsume_times() == 2**31 - 1


def test_reconsume_limits_when_set():
    opts = ConsumerOptions(max_reconsume_times=5)
    assert opts.max_reconsume_times_for_retry() == 5
    assert opts.orderly_max_reconsume_times() == 5


def test_suspend_time_clamped():
    opts = ConsumerOptions(suspend_current_queue_time_millis=700)
    assert opts.suspend_time_millis(-1) == 700
    assert opts.suspend_time_millis(3) == 10
    assert opts.suspend_time_millis(50000) == 30000
    assert opts.suspend_time_millis(3000) == 3000


def test_rebalance_thresholds_single_queue_takes_all():
    opts = ConsumerOptions(pull_threshold_for_topic=400, pull_threshold_size_for_topic=300)
    assert opts.rebalance_thresholds(1) == (400, 300)


def test_rebalance_thresholds_never_below_one():
    opts = ConsumerOptions(pull_threshold_for_topic=2, pull_threshold_size_for_topic=2)
    assert opts.rebalance_thresholds(10) == (1, 1)


def test_rebalance_thresholds_disabled_or_no_queues():
    opts = ConsumerOptions(
        pull_threshold_for_queue=9,
        pull_threshold_size_for_queue=8,
        pull_threshold_for_topic=-1,
        pull_threshold_size_for_topic=-1,
    )
    assert opts.rebalance_thresholds(4) == (9, 8)
    opts.pull_threshold_for_topic = 400
    assert opts.rebalance_thresholds(0) == (9, 8)


@pytest.mark.parametrize(
    "where, name",
    [
        (ConsumeFromWhere.LAST_OFFSET, "CONSUME_FROM_LAST_OFFSET"),
        (ConsumeFromWhere.FIRST_OFFSET, "CONSUME_FROM_FIRST_OFFSET"),
        (ConsumeFromWhere.TIMESTAMP, "CONSUME_FROM_TIMESTAMP"),
    ],
)
def test_where_name(where, name):
    assert ConsumerOptions(from_where=where).where_name() == name


@pytest.mark.parametrize(
    "model, text",
    [
        (MessageModel.BROADCASTING, "BroadCasting"),
        (MessageModel.CLUSTERING, "Clustering"),
    ],
)
def test_message_model_text(model, text):
    assert model.__str__() == text