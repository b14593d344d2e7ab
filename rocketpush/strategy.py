"""Strategies for dividing message queues between the consumers of a group."""

from __future__ import annotations

import bisect
import logging
import zlib
from typing import Callable, Optional, Sequence

from .message import MessageQueue

logger = logging.getLogger(__name__)

AllocateStrategy = Callable[
    [str, str, Sequence[MessageQueue], Sequence[str]], list[MessageQueue]
]


class ConsistentHashRing:
    """A CRC32 hash ring with a fixed number of virtual nodes per member."""

    def __init__(self, replicas: int = 20) -> None:
        self.replicas = replicas
        self._circle: dict[int, str] = {}
        self._sorted_hashes: list[int] = []

    @staticmethod
    def _hash(key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) & 0xFFFFFFFF

    def add(self, node: str) -> None:
        """Place a member on the ring under all its virtual keys."""
        for replica in range(self.replicas):
            self._circle[self._hash(f"{replica}{node}")] = node
        self._sorted_hashes = sorted(self._circle)

    def get(self, key: str) -> str:
        """Return the member owning the key; raise LookupError on an empty ring."""
        if not self._circle:
            raise LookupError("empty circle")
        index = bisect.bisect_right(self._sorted_hashes, self._hash(key))
        if index >= len(self._sorted_hashes):
            index = 0
        return self._circle[self._sorted_hashes[index]]


def _consumer_index(
    consumer_group: str, current_cid: str, cid_all: Sequence[str]
) -> Optional[int]:
    try:
        return list(cid_all).index(current_cid)
    except ValueError:
        logger.warning(
            "[BUG] ConsumerId not in cidAll: group=%s consumerId=%s cidAll=%s",
            consumer_group,
            current_cid,
            list(cid_all),
        )
        return None


def _params_missing(
    current_cid: str, mq_all: Optional[Sequence[MessageQueue]], cid_all: Optional[Sequence[str]]
) -> bool:
    return not current_cid or not mq_all or not cid_all


def allocate_by_averagely(
    consumer_group: str,
    current_cid: str,
    mq_all: Optional[Sequence[MessageQueue]],
    cid_all: Optional[Sequence[str]],
) -> list[MessageQueue]:
    """Give each consumer a contiguous block of queues of near-equal size."""
    if _params_missing(current_cid, mq_all, cid_all):
        return []
    index = _consumer_index(consumer_group, current_cid, cid_all)
    if index is None:
        return []

    mq_size = len(mq_all)
    cid_size = len(cid_all)
    mod = mq_size % cid_size
    takes_extra = mod > 0 and index < mod

    if mq_size <= cid_size:
        average_size = 1
    elif takes_extra:
        average_size = mq_size // cid_size + 1
    else:
        average_size = mq_size // cid_size

    start = index * average_size if takes_extra else index * average_size + mod
    count = min(average_size, mq_size - start)
    return [mq_all[(start + offset) % mq_size] for offset in range(count)]


def allocate_by_averagely_circle(
    consumer_group: str,
    current_cid: str,
    mq_all: Optional[Sequence[MessageQueue]],
    cid_all: Optional[Sequence[str]],
) -> list[MessageQueue]:
    """Deal queues out to consumers in turn, like cards round a table."""
    if _params_missing(current_cid, mq_all, cid_all):
        return []
    index = _consumer_index(consumer_group, current_cid, cid_all)
    if index is None:
        return []
    step = len(cid_all)
    return list(mq_all[index::step])


def allocate_by_machine_nearby(
    consumer_group: str,
    current_cid: str,
    mq_all: Optional[Sequence[MessageQueue]],
    cid_all: Optional[Sequence[str]],
) -> list[MessageQueue]:
    """Machine-room affinity allocation; currently the averaging strategy."""
    return allocate_by_averagely(consumer_group, current_cid, mq_all, cid_all)


def allocate_by_config(queues: Sequence[MessageQueue]) -> AllocateStrategy:
    """Return a strategy that always hands out the given queues."""
    fixed = list(queues)

    def strategy(
        consumer_group: str,
        current_cid: str,
        mq_all: Sequence[MessageQueue],
        cid_all: Sequence[str],
    ) -> list[MessageQueue]:
        return list(fixed)

    return strategy


def allocate_by_machine_room(consumer_idcs: Sequence[str]) -> AllocateStrategy:
    """Return a strategy that favours queues on brokers in the given rooms.

    Broker names take the form ``room@name``; only brokers whose room is in
    ``consumer_idcs`` count towards the share.
    """
    idcs = list(consumer_idcs)

    def strategy(
        consumer_group: str,
        current_cid: str,
        mq_all: Optional[Sequence[MessageQueue]],
        cid_all: Optional[Sequence[str]],
    ) -> list[MessageQueue]:
        if _params_missing(current_cid, mq_all, cid_all):
            return []
        index = _consumer_index(consumer_group, current_cid, cid_all)
        if index is None:
            return []

        room_queues = [
            mq
            for mq in mq_all
            if len(parts := mq.broker_name.split("@")) == 2
            for idc in idcs
            if idc == parts[0]
        ]

        per_consumer, remainder = divmod(len(room_queues), len(cid_all))
        start = per_consumer * index
        result = list(mq_all[start : start + per_consumer])
        if remainder > index:
            result.append(room_queues[index + per_consumer * len(cid_all)])
        return result

    return strategy


def allocate_by_consistent_hash(virtual_node_count: int) -> AllocateStrategy:
    """Return a strategy that assigns each queue to its owner on a hash ring."""

    def strategy(
        consumer_group: str,
        current_cid: str,
        mq_all: Optional[Sequence[MessageQueue]],
        cid_all: Optional[Sequence[str]],
    ) -> list[MessageQueue]:
        if _params_missing(current_cid, mq_all, cid_all):
            return []
        if _consumer_index(consumer_group, current_cid, cid_all) is None:
            return []

        ring = ConsistentHashRing(virtual_node_count)
        for cid in cid_all:
            ring.add(cid)

        result = []
        for mq in mq_all:
            try:
                owner = ring.get(str(mq))
            except LookupError as err:
                logger.warning("[BUG] AllocateByConsistentHash err: %s", err)
                continue
            if owner == current_cid:
                result.append(mq)
        return result

    return strategy