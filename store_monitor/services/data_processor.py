import pytz
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Tuple
import logging

from store_monitor import config
from store_monitor.models.schemas import BusinessInterval, StorePoll, TimezoneEntry

logger = logging.getLogger(__name__)


def minute_of_day(value) -> int:
    """Minutes since local midnight, seconds ignored"""
    return value.hour * 60 + value.minute


class TimezoneResolver:
    def __init__(self, timezones: Dict[str, str], default: str = config.DEFAULT_TIMEZONE):
        self.timezones = timezones
        self.default = default
        self._tzinfo_cache: Dict[str, pytz.BaseTzInfo] = {}

    @classmethod
    def from_entries(cls, entries: Iterable[TimezoneEntry], default: str = config.DEFAULT_TIMEZONE) -> "TimezoneResolver":
        return cls({entry.store_id: entry.timezone for entry in entries}, default=default)

    def resolve(self, store_id: str) -> str:
        """Get timezone for store, falling back to the default"""
        return self.timezones.get(store_id, self.default)

    def tzinfo_for(self, store_id: str) -> pytz.BaseTzInfo:
        name = self.resolve(store_id)
        tz = self._tzinfo_cache.get(name)
        if tz is None:
            tz = self._tzinfo_cache[name] = pytz.timezone(name)
        return tz

    def __len__(self) -> int:
        return len(self.timezones)


class BusinessHoursIndex:
    """Weekly local opening intervals per store.

    Stores without any interval are open around the clock. Bounds are compared
    in whole minutes and are inclusive on both ends.
    """

    def __init__(self, hours: Dict[str, Dict[int, List[Tuple[int, int]]]]):
        self.hours = hours

    @classmethod
    def from_intervals(cls, intervals: Iterable[BusinessInterval]) -> "BusinessHoursIndex":
        hours: Dict[str, Dict[int, List[Tuple[int, int]]]] = defaultdict(lambda: defaultdict(list))
        for interval in intervals:
            hours[interval.store_id][interval.day_of_week].append(
                (minute_of_day(interval.start_local), minute_of_day(interval.end_local))
            )
        return cls({store_id: dict(days) for store_id, days in hours.items()})

    def is_open(self, store_id: str, local_timestamp: datetime) -> bool:
        store_hours = self.hours.get(store_id)
        if not store_hours:
            return True

        minutes = minute_of_day(local_timestamp)
        for start, end in store_hours.get(local_timestamp.weekday(), ()):
            if start <= minutes <= end:
                return True
        return False

    def __len__(self) -> int:
        return len(self.hours)


@dataclass
class StoreAggregate:
    store_id: str
    in_hours_total: int = 0
    in_hours_active: int = 0

    @property
    def uptime_percentage(self) -> float:
        # no in-hours observations means the store is assumed fully up
        if self.in_hours_total == 0:
            return 100.0
        return self.in_hours_active / self.in_hours_total * 100


def aggregate_uptime(
    polls: Iterable[StorePoll],
    timezones: TimezoneResolver,
    hours_index: BusinessHoursIndex,
) -> Dict[str, StoreAggregate]:
    """Fold the polls into per-store in-hours counters in a single pass"""
    aggregates: Dict[str, StoreAggregate] = {}
    processed = 0

    for poll in polls:
        processed += 1
        aggregate = aggregates.get(poll.store_id)
        if aggregate is None:
            aggregate = aggregates[poll.store_id] = StoreAggregate(poll.store_id)

        local_time = poll.timestamp_utc.astimezone(timezones.tzinfo_for(poll.store_id))
        if not hours_index.is_open(poll.store_id, local_time):
            continue

        aggregate.in_hours_total += 1
        if poll.is_active:
            aggregate.in_hours_active += 1

    logger.info(f"Aggregated {processed} polls for {len(aggregates)} stores")
    return aggregates
