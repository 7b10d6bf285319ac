from __future__ import annotations
import itertools
import logging
from collections import deque
from typing import Iterable, Iterator

from .models import Channel, Sample
from ..core.timeutil import now_utc

logger = logging.getLogger(__name__)


# Substituted only by latest() when a buffer holds no data at all.
DEFAULT_VALUES = {
    Channel.TEMPERATURE: 23.0,
    Channel.HUMIDITY: 80.0,
    Channel.CO2: 800.0,
}


class TimeSeriesBuffer:
    """Time-ordered samples for one channel, bounded by a live ceiling.

    Appends go to the tail without re-sorting. The only full sort is the one
    the reconciler requests after bulk-loading a history snapshot. Eviction
    always removes from the head, so a retained sample is never older than an
    evicted one.
    """

    def __init__(self, channel: Channel, live_ceiling: int) -> None:
        if live_ceiling < 1:
            raise ValueError("live_ceiling must be >= 1")
        self.channel = channel
        self.live_ceiling = live_ceiling
        self._samples: deque[Sample] = deque()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def append(self, sample: Sample) -> None:
        if self._samples and sample.timestamp < self._samples[-1].timestamp:
            logger.debug(
                "Out-of-order append on %s: %s < %s",
                self.channel.value, sample.timestamp, self._samples[-1].timestamp,
            )
        self._samples.append(sample)

    def extend(self, samples: Iterable[Sample]) -> None:
        self._samples.extend(samples)

    def evict_if_over_capacity(self) -> int:
        evicted = 0
        while len(self._samples) > self.live_ceiling:
            self._samples.popleft()
            evicted += 1
        return evicted

    def sort(self) -> None:
        # sorted() is stable: equal timestamps keep their arrival order
        self._samples = deque(sorted(self._samples, key=lambda s: s.timestamp))

    def clear(self) -> None:
        self._samples.clear()

    def latest(self) -> Sample:
        if self._samples:
            return self._samples[-1]
        return Sample(timestamp=now_utc(), value=DEFAULT_VALUES[self.channel])

    def window(self, n: int) -> Iterator[Sample]:
        """Single-pass iterator over the last ``n`` samples, oldest first.

        Empty when the buffer holds fewer than two samples, since a single
        point is nothing to draw.
        """
        size = len(self._samples)
        if size < 2 or n <= 0:
            return iter(())
        return itertools.islice(self._samples, max(size - n, 0), None)

    def samples(self) -> list[Sample]:
        return list(self._samples)

    def values(self) -> list[float]:
        return [s.value for s in self._samples]
