# rocketpush

This is the in-process core of a push-style message consumer. It has no dependencies beyond the standard library. It contains:

- `rocketpush.strategy`: strategies that split the queues of a topic among the consumers of a group.
- `rocketpush.statistics`: sliding-window pull and consume statistics for each topic and group.
- `rocketpush.options`: consumer settings, with range checks and defaults.
- `rocketpush.subscription`: message selectors, subscription data, consume context and interceptor chaining.
- `rocketpush.push_consumer`: `PushConsumer`. It handles subscriptions, callback dispatch, retry-topic handling, reconsume checks and threshold rescaling.
- `rocketpush.message`: `MessageQueue` and `MessageExt`.
- `rocketpush.errors`: `MQClientError` and its `ErrorKind` values.

## Installation

```
pip install rocketpush
```

## Allocating queues

```python
from rocketpush.message import MessageQueue
from rocketpush.strategy import allocate_by_averagely

queues = [MessageQueue(topic="TopicTest", broker_name="broker-a", queue_id=i) for i in range(6)]
mine = allocate_by_averagely(
    "testGroup",
    "10.0.0.1@default",
    queues,
    ["10.0.0.1@default", "10.0.0.2@default"],
)
# queues 0, 1 and 2
```

Each strategy takes `(consumer_group, current_cid, mq_all, cid_all)` and returns a list of queues.

| Function | How it allocates |
| --- | --- |
| `allocate_by_averagely` | Gives each consumer a contiguous block of near-equal size. |
| `allocate_by_averagely_circle` | Deals the queues out in turn, one consumer after another. |
| `allocate_by_machine_nearby` | Currently the same as `allocate_by_averagely`. |
| `allocate_by_config(queues)` | Returns a strategy that always hands out the given queues. |
| `allocate_by_machine_room(consumer_idcs)` | Returns a strategy that counts only brokers named `room@name` whose room is in the list. |
| `allocate_by_consistent_hash(virtual_node_count)` | Returns a strategy that gives each queue to its owner on a `ConsistentHashRing`, which is a CRC32 ring with virtual nodes. |

A strategy returns an empty list in these cases:

- the current client id is empty;
- either list is empty;
- the client id is not in the list of consumers (a warning is logged).

## Statistics

```python
from rocketpush.statistics import StatsManager

stats = StatsManager(start_timers=False)
stats.increase_pull_tps("group", "topic", 10)
stats.pull_tps.sampling_in_seconds()
print(stats.get_consume_status("group", "topic"))
stats.shutdown()
```

Items are kept per key, written `topic@group`. Each item samples into three windows:

| Window | Samples kept |
| --- | --- |
| Minute | 7 |
| Hour | 7 |
| Day | 25 |

`compute_stats_data` derives the sum, the TPS and the average from the first and last samples of a window.

With `start_timers=True`, daemon threads take samples every 10 seconds, every 10 minutes and every hour, and they log summaries. With `start_timers=False`, you call the `sampling_in_*` methods yourself. `shutdown()` stops the timers.

## Options

`ConsumerOptions.validate(group)` checks the group name and each setting:

- An empty group name raises `MQClientError` with `ErrorKind.EMPTY_GROUP_ID`.
- The reserved name `DEFAULT_CONSUMER` raises `ValueError`.
- A limit that is zero is replaced by its default.
- A limit that is out of range raises `ValueError`.

Further helpers:

- `max_reconsume_times_for_retry()` gives 16 when the option is unset.
- `orderly_max_reconsume_times()` gives the 32-bit integer maximum when the option is unset.
- `suspend_time_millis()` clamps its result to 10–30000 ms.
- `rebalance_thresholds(queue_count)` divides the topic-wide thresholds among the queues.
- `where_name()` gives the name of the starting position.

## Consuming

```python
from rocketpush.options import ConsumerOptions, ConsumeResult
from rocketpush.push_consumer import PushConsumer
from rocketpush.subscription import MessageSelector, ExpressionType

consumer = PushConsumer(ConsumerOptions(group_name="testGroup"), [])
consumer.subscribe(
    "TopicTest",
    MessageSelector(ExpressionType.TAG, "TagA || TagC"),
    lambda ctx, msgs: ConsumeResult.CONSUME_SUCCESS,
)
consumer.start({"TopicTest"})
consumer.shutdown()
```

### Starting and stopping

`start(topic_routes)` does the following:

1. It validates the options.
2. It registers the group in a process-wide registry. A second live consumer with the same group raises `MQClientError(ErrorKind.CREATED)`.
3. It checks that every subscribed topic has route info. If one does not, the consumer shuts down and raises `ErrorKind.ROUTE_NOT_FOUND`.

After a failed start or a shutdown, `subscribe` raises `ErrorKind.START_TOPIC`. When a namespace is set, topic names and the group name are prefixed with `namespace%`.

### Consuming messages

`consume_inner(context, messages)` finds the callback for the first message's topic. For messages on a retry topic, it falls back to the topic named in their `RETRY_TOPIC` property. It then runs the callback through any interceptors, chained by `chain_interceptors` so that the first one runs outermost.

- If the batch is empty, it raises `ValueError`.
- If no callback is found, it raises `LookupError`.

`consume_message_directly` reports the outcome as a `DirectConsumeResult`, with one of these codes:

- `CR_SUCCESS`
- `CR_LATER`
- `CR_THROW_EXCEPTION`

### Other calls

- `check_reconsume_times(messages, send_back)` decides whether an orderly queue must pause.
- `message_queue_changed(topic, queue_count)` bumps the subscription version and rescales the per-queue thresholds.

## What this package does not do

There is no network layer. The package does not connect to name servers or brokers, and it does not do any of the following:

- pull messages;
- send messages back;
- store offsets;
- run a rebalance loop.

Topic routes, the send-back function and queue counts are passed in by the caller.

## Running the tests

```
pip install -e .[test]
pytest
```