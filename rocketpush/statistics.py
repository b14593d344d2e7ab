"""Rolling consumption and pull statistics kept per topic and consumer group."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

_MINUTE_SAMPLES = 7
_HOUR_SAMPLES = 7
_DAY_SAMPLES = 25


@dataclass(frozen=True)
class CallSnapshot:
    """Counters captured at one sampling instant; timestamp is in milliseconds."""

    timestamp: int
    time: int
    value: int


@dataclass(frozen=True)
class StatsSnapshot:
    """Totals derived from a window of call snapshots."""

    sum: int = 0
    tps: float = 0.0
    avgpt: float = 0.0


@dataclass
class ConsumeStatus:
    """Pull and consume figures for one topic of one group."""

    pull_rt: float = 0.0
    pull_tps: float = 0.0
    consume_rt: float = 0.0
    consume_ok_tps: float = 0.0
    consume_failed_tps: float = 0.0
    consume_failed_msgs: int = 0


def _divide(numerator: float, denominator: float) -> float:
    if denominator != 0:
        return numerator / denominator
    if numerator == 0:
        return math.nan
    return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)


def compute_stats_data(snapshots: Sequence[CallSnapshot]) -> StatsSnapshot:
    """Summarise the change between the first and last snapshot of a window."""
    if not snapshots:
        return StatsSnapshot()
    first, last = snapshots[0], snapshots[-1]
    total = last.value - first.value
    tps = _divide(float(total * 1000), float(last.timestamp - first.timestamp))
    times_diff = last.time - first.time
    avgpt = total / times_diff if times_diff > 0 else 0.0
    return StatsSnapshot(sum=total, tps=tps, avgpt=avgpt)


def next_minutes_time() -> datetime:
    """Return the moment one minute from now."""
    return datetime.now() + timedelta(minutes=1)


def next_hour_time() -> datetime:
    """Return the moment one hour from now."""
    return datetime.now() + timedelta(hours=1)


def next_month_time() -> datetime:
    """Return the same time one calendar month on, rolling overflowing days forward."""
    now = datetime.now()
    year, month = divmod(now.month, 12)
    base = now.replace(year=now.year + year, month=month + 1, day=1)
    return base + timedelta(days=now.day - 1)


class StatsItem:
    """Running counters for one key, with sampled windows per minute, hour and day."""

    def __init__(self, stats_name: str, stats_key: str) -> None:
        self.stats_name = stats_name
        self.stats_key = stats_key
        self.value = 0
        self.times = 0
        self._counter_lock = threading.Lock()
        self._minute: deque[CallSnapshot] = deque(maxlen=_MINUTE_SAMPLES)
        self._hour: deque[CallSnapshot] = deque(maxlen=_HOUR_SAMPLES)
        self._day: deque[CallSnapshot] = deque(maxlen=_DAY_SAMPLES)
        self._minute_lock = threading.Lock()
        self._hour_lock = threading.Lock()
        self._day_lock = threading.Lock()

    def add(self, inc_value: int, inc_times: int) -> None:
        """Add to the running value and call count."""
        with self._counter_lock:
            self.value += inc_value
            self.times += inc_times

    def _snapshot(self) -> CallSnapshot:
        with self._counter_lock:
            return CallSnapshot(
                timestamp=int(time.time()) * 1000, time=self.times, value=self.value
            )

    def _sample(self, window: deque[CallSnapshot], lock: threading.Lock) -> None:
        snapshot = self._snapshot()
        with lock:
            window.append(snapshot)

    @staticmethod
    def _compute(window: Iterable[CallSnapshot], lock: threading.Lock) -> StatsSnapshot:
        with lock:
            return compute_stats_data(list(window))

    def sampling_in_seconds(self) -> None:
        """Record a sample in the minute window."""
        self._sample(self._minute, self._minute_lock)

    def sampling_in_minutes(self) -> None:
        """Record a sample in the hour window."""
        self._sample(self._hour, self._hour_lock)

    def sampling_in_hour(self) -> None:
        """Record a sample in the day window."""
        self._sample(self._day, self._day_lock)

    def stats_in_minute(self) -> StatsSnapshot:
        return self._compute(self._minute, self._minute_lock)

    def stats_in_hour(self) -> StatsSnapshot:
        return self._compute(self._hour, self._hour_lock)

    def stats_in_day(self) -> StatsSnapshot:
        return self._compute(self._day, self._day_lock)

    def _log(self, title: str, snapshot: StatsSnapshot) -> None:
        logger.info(
            "%s statsName=%s statsKey=%s SUM=%d TPS=%.2f AVGPT=%s",
            title,
            self.stats_name,
            self.stats_key,
            snapshot.sum,
            snapshot.tps,
            snapshot.avgpt,
        )

    def log_minute(self) -> None:
        self._log("Stats In One Minute.", self.stats_in_minute())

    def log_hour(self) -> None:
        self._log("Stats In One Hour.", self.stats_in_hour())

    def log_day(self) -> None:
        self._log("Stats In One Day.", self.stats_in_day())


def _run_periodically(
    closed: threading.Event,
    interval: float,
    action: Callable[[], None],
    first_delay: Optional[Callable[[], float]] = None,
) -> None:
    if first_delay is not None and closed.wait(max(first_delay(), 0.0)):
        return
    while not closed.wait(interval):
        try:
            action()
        except Exception:  # keep the timer alive whatever one round does
            logger.exception("statistics task failed")


class StatsItemSet:
    """A named family of stats items, one per key, with optional background timers."""

    def __init__(self, stats_name: str, start_timers: bool = True) -> None:
        self.stats_name = stats_name
        self._items: dict[str, StatsItem] = {}
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._threads: list[threading.Thread] = []
        if start_timers:
            self._start_timers()

    def _start_timers(self) -> None:
        now = datetime.now
        tasks = [
            (10.0, self.sampling_in_seconds, None),
            (600.0, self.sampling_in_minutes, None),
            (3600.0, self.sampling_in_hour, None),
            (
                60.0,
                self._log_minute,
                lambda: (next_minutes_time() - now()).total_seconds(),
            ),
            (3600.0, self._log_hour, lambda: (next_hour_time() - now()).total_seconds()),
            (
                86400.0,
                self._log_day,
                lambda: (next_month_time() - now()).total_seconds(),
            ),
        ]
        for interval, action, delay in tasks:
            thread = threading.Thread(
                target=_run_periodically,
                args=(self._closed, interval, action, delay),
                name=f"stats-{self.stats_name}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _all_items(self) -> list[StatsItem]:
        with self._lock:
            return list(self._items.values())

    def add_value(self, key: str, inc_value: int, inc_times: int) -> None:
        """Add to the counters of the item under the key, creating it if needed."""
        self.get_or_create(key).add(inc_value, inc_times)

    def get_or_create(self, key: str) -> StatsItem:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                item = StatsItem(self.stats_name, key)
                self._items[key] = item
            return item

    def sampling_in_seconds(self) -> None:
        for item in self._all_items():
            item.sampling_in_seconds()

    def sampling_in_minutes(self) -> None:
        for item in self._all_items():
            item.sampling_in_minutes()

    def sampling_in_hour(self) -> None:
        for item in self._all_items():
            item.sampling_in_hour()

    def _log_minute(self) -> None:
        for item in self._all_items():
            item.log_minute()

    def _log_hour(self) -> None:
        for item in self._all_items():
            item.log_hour()

    def _log_day(self) -> None:
        for item in self._all_items():
            item.log_day()

    def _lookup(self, key: str) -> Optional[StatsItem]:
        with self._lock:
            return self._items.get(key)

    def stats_in_minute(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_minute() if item else StatsSnapshot()

    def stats_in_hour(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_hour() if item else StatsSnapshot()

    def stats_in_day(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_day() if item else StatsSnapshot()

    def close(self) -> None:
        """Stop the background timers."""
        self._closed.set()


def _stats_key(group: str, topic: str) -> str:
    return f"{topic}@{group}"


class StatsManager:
    """Pull and consume statistics for every topic and group of a client."""

    def __init__(self, start_timers: bool = True) -> None:
        self.consume_ok_tps = StatsItemSet("CONSUME_OK_TPS", start_timers)
        self.consume_rt = StatsItemSet("CONSUME_RT", start_timers)
        self.consume_failed_tps = StatsItemSet("CONSUME_FAILED_TPS", start_timers)
        self.pull_tps = StatsItemSet("PULL_TPS", start_timers)
        self.pull_rt = StatsItemSet("PULL_RT", start_timers)
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def item_sets(self) -> tuple[StatsItemSet, ...]:
        return (
            self.consume_ok_tps,
            self.consume_rt,
            self.consume_failed_tps,
            self.pull_tps,
            self.pull_rt,
        )

    def increase_pull_rt(self, group: str, topic: str, rt: int) -> None:
        self.pull_rt.add_value(_stats_key(group, topic), rt, 1)

    def increase_pull_tps(self, group: str, topic: str, msgs: int) -> None:
        self.pull_tps.add_value(_stats_key(group, topic), msgs, 1)

    def increase_consume_rt(self, group: str, topic: str, rt: int) -> None:
        self.consume_rt.add_value(_stats_key(group, topic), rt, 1)

    def increase_consume_ok_tps(self, group: str, topic: str, msgs: int) -> None:
        self.consume_ok_tps.add_value(_stats_key(group, topic), msgs, 1)

    def increase_consume_failed_tps(self, group: str, topic: str, msgs: int) -> None:
        self.consume_failed_tps.add_value(_stats_key(group, topic), msgs, 1)

    def get_pull_rt(self, group: str, topic: str) -> StatsSnapshot:
        return self.pull_rt.stats_in_minute(_stats_key(group, topic))

    def get_pull_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.pull_tps.stats_in_minute(_stats_key(group, topic))

    def get_consume_rt(self, group: str, topic: str) -> StatsSnapshot:
        """Minute figures, falling back to the hour window when nothing moved."""
        key = _stats_key(group, topic)
        snapshot = self.consume_rt.stats_in_minute(key)
        if snapshot.sum == 0:
            return self.consume_rt.stats_in_hour(key)
        return snapshot

    def get_consume_ok_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.consume_ok_tps.stats_in_minute(_stats_key(group, topic))

    def get_consume_failed_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.consume_failed_tps.stats_in_minute(_stats_key(group, topic))

    def get_consume_status(self, group: str, topic: str) -> ConsumeStatus:
        """Collect the current figures for one topic of one group."""
        return ConsumeStatus(
            pull_tps=self.get_pull_tps(group, topic).tps,
            consume_rt=self.get_consume_rt(group, topic).avgpt,
            consume_ok_tps=self.get_consume_ok_tps(group, topic).tps,
            consume_failed_tps=self.get_consume_failed_tps(group, topic).tps,
            consume_failed_msgs=self.consume_failed_tps.stats_in_hour(
                _stats_key(group, topic)
            ).sum,
        )

    def shutdown(self) -> None:
        """Stop every timer; later calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        for item_set in self.item_sets:
            item_set.close()