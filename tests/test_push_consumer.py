import pytest

from rocketpush.errors import ErrorKind, MQClientError
from rocketpush.message import (
    PROPERTY_CONSUME_START_TIME,
    PROPERTY_RETRY_TOPIC,
    MessageExt,
    MessageQueue,
)
from rocketpush.options import ConsumeResult, ConsumerOptions, MessageModel
from rocketpush.push_consumer import PushConsumer
from rocketpush.subscription import (
    DIRECT_LATER,
    DIRECT_SUCCESS,
    DIRECT_THROW_EXCEPTION,
    PROP_CTX_TYPE,
    RETURN_FAILED,
    RETURN_SUCCESS,
    ConsumeContext,
    MessageSelector,
)


def _ok(ctx, msgs):
    return ConsumeResult.CONSUME_SUCCESS


@pytest.fixture
def consumers():
    made = []

    def make(group="testGroup", interceptors=(), **kwargs):
        options = ConsumerOptions(
            group_name=group, model=MessageModel.BROADCASTING, **kwargs
        )
        consumer = PushConsumer(options, interceptors)
        made.append(consumer)
        return consumer

    yield make
    for consumer in made:
        consumer.shutdown()


def test_subscribe_unsubscribe(consumers):
    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), _ok)
    assert c.is_subscribed("TopicTest") is True
    c.unsubscribe("TopicTest")
    assert c.is_subscribed("TopicTest") is False
    c.subscribe("TopicTest", MessageSelector(), _ok)
    assert c.is_subscribed("TopicTest") is True


def test_start_route_info_not_found(consumers):
    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), _ok)
    with pytest.raises(MQClientError) as info:
        c.start(topic_routes=set())
    assert "route info not found" in str(info.value)
    assert c.state == "Shutdown"


def test_start_route_info_found(consumers):
    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), _ok)
    c.start(topic_routes={"TopicTest"})
    assert c.state == "Running"
    assert c.options.consume_message_batch_max_size == 1


def test_default_group_rejected(consumers):
    c = consumers(group="DEFAULT_CONSUMER")
    with pytest.raises(ValueError, match="validate fail"):
        c.start()
    with pytest.raises(MQClientError) as info:
        c.subscribe("TopicTest", MessageSelector(), _ok)
    assert info.value.kind is ErrorKind.START_TOPIC


def test_duplicate_group_rejected(consumers):
    first = consumers(group="dupGroup")
    first.start()
    second = consumers(group="dupGroup")
    with pytest.raises(MQClientError) as info:
        second.start()
    assert info.value.kind is ErrorKind.CREATED


def test_subscribe_after_shutdown(consumers):
    c = consumers()
    c.shutdown()
    c.shutdown()
    with pytest.raises(MQClientError) as info:
        c.subscribe("TopicTest", MessageSelector(), _ok)
    assert info.value.kind is ErrorKind.START_TOPIC


def test_namespace_prefixes_group_and_topic(consumers):
    c = consumers(namespace="ns")
    assert c.consumer_group == "ns%testGroup"
    c.subscribe("TopicTest", MessageSelector(), _ok)
    assert c.is_subscribed("TopicTest") is True
    assert c.message_queue_changed("ns%TopicTest", 2) is not None


def test_suspend_resume(consumers):
    c = consumers()
    c.suspend()
    assert c.paused is True
    c.resume()
    assert c.paused is False


def test_reset_retry_and_namespace(consumers):
    c = consumers()
    retried = MessageExt(
        topic="%RETRY%testGroup", properties={PROPERTY_RETRY_TOPIC: "TopicTest"}
    )
    plain = MessageExt(topic="Other")
    c.reset_retry_and_namespace([retried, plain])
    assert retried.topic == "TopicTest"
    assert plain.topic == "Other"
    assert retried.get_property(PROPERTY_CONSUME_START_TIME).isdigit()


def test_consume_inner_without_messages(consumers):
    c = consumers()
    with pytest.raises(ValueError, match="msg list empty"):
        c.consume_inner(ConsumeContext(), [])


def test_consume_inner_missing_callback(consumers):
    c = consumers()
    with pytest.raises(LookupError, match="callback missing for topic: Nope"):
        c.consume_inner(ConsumeContext(), [MessageExt(topic="Nope")])


def test_consume_inner_finds_retry_callback(consumers):
    c = consumers()
    seen = []

    def callback(ctx, msgs):
        seen.extend(msgs)
        return ConsumeResult.CONSUME_RETRY_LATER

    c.subscribe("TopicTest", MessageSelector(), callback)
    msg = MessageExt(
        topic="%RETRY%otherGroup", properties={PROPERTY_RETRY_TOPIC: "TopicTest"}
    )
    assert c.consume_inner(ConsumeContext(), [msg]) is ConsumeResult.CONSUME_RETRY_LATER
    assert seen == [msg]


def test_consume_inner_runs_interceptors_in_order(consumers):
    calls = []

    def first(ctx, req, reply, invoke):
        calls.append("first-before")
        invoke(ctx, req, reply)
        calls.append("first-after")

    def second(ctx, req, reply, invoke):
        calls.append("second-before")
        invoke(ctx, req, reply)
        calls.append("second-after")

    c = consumers(interceptors=[first, second])
    c.subscribe("TopicTest", MessageSelector(), _ok)
    ctx = ConsumeContext()
    result = c.consume_inner(ctx, [MessageExt(topic="TopicTest")])
    assert result is ConsumeResult.CONSUME_SUCCESS
    assert calls == ["first-before", "second-before", "second-after", "first-after"]
    assert ctx.success is True
    assert ctx.properties[PROP_CTX_TYPE] == RETURN_SUCCESS


def test_interceptor_marks_failure(consumers):
    def passthrough(ctx, req, reply, invoke):
        invoke(ctx, req, reply)

    c = consumers(interceptors=[passthrough])
    c.subscribe(
        "TopicTest", MessageSelector(), lambda ctx, msgs: ConsumeResult.CONSUME_RETRY_LATER
    )
    ctx = ConsumeContext()
    assert c.consume_inner(ctx, [MessageExt(topic="TopicTest")]) is (
        ConsumeResult.CONSUME_RETRY_LATER
    )
    assert ctx.success is False
    assert ctx.properties[PROP_CTX_TYPE] == RETURN_FAILED


def test_consume_message_directly_success(consumers):
    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), _ok)
    msg = MessageExt(topic="TopicTest", queue=MessageQueue("TopicTest", "b", 3))
    result = c.consume_message_directly(msg, "broker-a")
    assert result.consume_result == DIRECT_SUCCESS
    assert result.order is False
    assert result.auto_commit is True
    assert c.stats.consume_rt.get_or_create("TopicTest@testGroup").times == 1


def test_consume_message_directly_retry_later(consumers):
    c = consumers()
    c.subscribe(
        "TopicTest", MessageSelector(), lambda ctx, msgs: ConsumeResult.CONSUME_RETRY_LATER
    )
    result = c.consume_message_directly(MessageExt(topic="TopicTest"), "broker-a")
    assert result.consume_result == DIRECT_LATER


def test_consume_message_directly_exception(consumers):
    def broken(ctx, msgs):
        raise RuntimeError("boom")

    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), broken)
    result = c.consume_message_directly(MessageExt(topic="TopicTest"), "broker-a")
    assert result.consume_result == DIRECT_THROW_EXCEPTION
    assert result.remark == "boom"


def test_check_reconsume_times_sent_back(consumers):
    c = consumers(max_reconsume_times=5)
    msg = MessageExt(topic="TopicTest", reconsume_times=6)
    sent = []

    def send_back(broker, m, level):
        sent.append((m, level))
        return True

    assert c.check_reconsume_times([msg], send_back) is False
    assert msg.get_property("RECONSUME_TIME") == "6"
    assert msg.reconsume_times == 6
    assert sent == [(msg, -1)]


def test_check_reconsume_times_send_back_fails(consumers):
    c = consumers(max_reconsume_times=5)
    msg = MessageExt(topic="TopicTest", reconsume_times=6)
    assert c.check_reconsume_times([msg], lambda b, m, level: False) is True
    assert msg.reconsume_times == 7


def test_check_reconsume_times_under_limit(consumers):
    c = consumers(max_reconsume_times=5)
    msg = MessageExt(topic="TopicTest", reconsume_times=2)
    assert c.check_reconsume_times([msg], lambda b, m, level: True) is True
    assert msg.reconsume_times == 3
    assert c.check_reconsume_times([], lambda b, m, level: True) is False


def test_message_queue_changed(consumers):
    c = consumers()
    c.subscribe("TopicTest", MessageSelector(), _ok)
    c.options.validate(c.consumer_group)
    assert c.message_queue_changed("TopicTest", 4) == (25600, 12800)
    assert c.options.pull_threshold_for_queue == 25600
    assert c.message_queue_changed("Unknown", 4) is None