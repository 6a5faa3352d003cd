"""
Interval overlap checks for slot availability.

All intervals are half-open: [start, end). Two intervals overlap when
start_a < end_b and start_b < end_a, so touching endpoints are free.
"""
from bisect import bisect_left
from collections import defaultdict
from datetime import timedelta


def intervals_overlap(start_a, end_a, start_b, end_b):
    return start_a < end_b and start_b < end_a


class BusyIndex:
    """
    Sorted view over busy intervals answering overlap queries in O(log n).

    Intervals are sorted once by start. `max_ends[i]` holds the latest end
    among the first i + 1 intervals, so the intervals that start before a
    query's end overlap it exactly when the largest of their ends is past
    the query's start. Nested and overlapping busy intervals are handled
    without scanning neighbours.
    """

    def __init__(self, intervals):
        ordered = sorted(intervals, key=lambda interval: interval.start)
        self.starts = [interval.start for interval in ordered]
        self.max_ends = []
        latest = None
        for interval in ordered:
            if latest is None or interval.end > latest:
                latest = interval.end
            self.max_ends.append(latest)

    def __len__(self):
        return len(self.starts)

    def overlaps(self, start, end):
        # Intervals [0, idx) start strictly before `end`
        idx = bisect_left(self.starts, end)
        if idx == 0:
            return False
        # The interval holding max_ends[idx - 1] starts before `end`, so the
        # span from the first start to that end overlaps exactly when it does
        return intervals_overlap(self.starts[0], self.max_ends[idx - 1], start, end)


def _padded(slot, buffer_before, buffer_after):
    return (
        slot.start - timedelta(minutes=buffer_before),
        slot.end + timedelta(minutes=buffer_after),
    )


def filter_available(slots, busy, buffer_before=0, buffer_after=0):
    """
    Return the slots that do not overlap any busy interval.

    Busy intervals from every calendar are treated as one set. Slot order is
    preserved; an empty busy list returns the input unchanged.
    """
    if not busy:
        return slots

    index = BusyIndex(busy)
    available = []
    for slot in slots:
        start, end = _padded(slot, buffer_before, buffer_after)
        if not index.overlaps(start, end):
            available.append(slot)
    return available


def build_member_indexes(busy, member_ids):
    """One BusyIndex per member; members without busy time get an empty index."""
    grouped = defaultdict(list)
    for interval in busy:
        grouped[interval.assignee_id].append(interval)
    return {member_id: BusyIndex(grouped.get(member_id, [])) for member_id in member_ids}


def filter_available_for_any(slots, busy, member_ids, buffer_before=0, buffer_after=0):
    """
    Return the slots at which at least one of `member_ids` is free.

    Busy intervals are matched to members by `assignee_id`; intervals that
    belong to nobody in `member_ids` are ignored.
    """
    member_ids = list(member_ids)
    if not member_ids:
        return []
    if not busy:
        return slots

    indexes = build_member_indexes(busy, member_ids)
    available = []
    for slot in slots:
        start, end = _padded(slot, buffer_before, buffer_after)
        if any(not indexes[member_id].overlaps(start, end) for member_id in member_ids):
            available.append(slot)
    return available


def busy_members_at(busy, member_ids, start, end):
    """Members from `member_ids` with a busy interval overlapping [start, end)."""
    indexes = build_member_indexes(busy, member_ids)
    return {member_id for member_id, index in indexes.items() if index.overlaps(start, end)}
