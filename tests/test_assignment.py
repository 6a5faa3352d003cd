"""Tests for the assignment resolver."""

from collections import Counter
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from apps.events.assignment import get_weekly_event_counts, resolve_assignee
from apps.events.models import BookingLinkHost

pytestmark = pytest.mark.django_db

SLOT = datetime(2024, 6, 5, 10, 0, tzinfo=dt_timezone.utc)
CREATED = datetime(2024, 6, 1, 12, 0, tzinfo=dt_timezone.utc)


def at(day, hour):
    return datetime(2024, 6, day, hour, 0, tzinfo=dt_timezone.utc)


class TestOwnerPolicy:

    def test_owner_link_returns_owner(self, booking_link, owner):
        assert resolve_assignee(booking_link, SLOT) == owner.id

    def test_owner_is_returned_even_when_team_members_exist(self, booking_link, owner, members):
        BookingLinkHost.objects.create(booking_link=booking_link, user=members[0])
        assert resolve_assignee(booking_link, SLOT) == owner.id


class TestRoundRobin:

    def test_first_member_when_no_history(self, team_link, members):
        assert resolve_assignee(team_link, SLOT) == members[0].id

    def test_next_member_after_last_assignee(self, team_link, members, make_booking):
        alice, bob, carol = members
        make_booking(team_link, at(4, 9), assigned_to=alice, created_at=CREATED)
        make_booking(team_link, at(4, 10), assigned_to=bob, created_at=CREATED + timedelta(minutes=1))

        assert resolve_assignee(team_link, SLOT) == carol.id

    def test_rotation_wraps_around(self, team_link, members, make_booking):
        make_booking(team_link, at(4, 9), assigned_to=members[2], created_at=CREATED)
        assert resolve_assignee(team_link, SLOT) == members[0].id

    def test_cancelled_bookings_still_drive_rotation(self, team_link, members, make_booking):
        make_booking(team_link, at(4, 9), assigned_to=members[0], status="cancelled", created_at=CREATED)
        assert resolve_assignee(team_link, SLOT) == members[1].id

    def test_last_created_booking_wins_over_latest_scheduled(self, team_link, members, make_booking):
        make_booking(team_link, at(20, 9), assigned_to=members[2], created_at=CREATED)
        make_booking(team_link, at(4, 9), assigned_to=members[0], created_at=CREATED + timedelta(hours=1))

        assert resolve_assignee(team_link, SLOT) == members[1].id

    def test_ineligible_previous_assignee_falls_back_to_first(self, team_link, members, make_booking):
        make_booking(team_link, at(4, 9), assigned_to=members[1], created_at=CREATED)
        BookingLinkHost.objects.filter(booking_link=team_link, user=members[1]).update(is_active=False)

        assert resolve_assignee(team_link, SLOT) == members[0].id

    def test_priority_order_defines_rotation(self, team_link, members):
        BookingLinkHost.objects.filter(booking_link=team_link, user=members[2]).update(priority_order=-1)
        assert resolve_assignee(team_link, SLOT) == members[2].id

    def test_busy_member_is_skipped(self, team_link, members, make_booking):
        make_booking(team_link, at(4, 9), assigned_to=members[0], created_at=CREATED)

        assert resolve_assignee(team_link, SLOT, busy_member_ids={members[1].id}) == members[2].id

    def test_all_members_busy_returns_none(self, team_link, members):
        assert resolve_assignee(team_link, SLOT, busy_member_ids={m.id for m in members}) is None

    def test_no_eligible_members_returns_none(self, team_link):
        team_link.hosts.all().delete()
        assert resolve_assignee(team_link, SLOT) is None

    def test_inactive_users_are_not_eligible(self, team_link, members):
        members[0].is_active = False
        members[0].save()
        assert resolve_assignee(team_link, SLOT) == members[1].id

    def test_rotation_is_fair(self, team_link, members, make_booking):
        chosen = []
        for index in range(8):
            assignee_id = resolve_assignee(team_link, SLOT)
            chosen.append(assignee_id)
            assignee = next(m for m in members if m.id == assignee_id)
            make_booking(team_link, at(4, 9) + timedelta(minutes=30 * index), assigned_to=assignee,
                         created_at=CREATED + timedelta(minutes=index))

        counts = Counter(chosen)
        assert sorted(counts.values()) == [2, 3, 3]
        assert all(first != second for first, second in zip(chosen, chosen[1:]))
        assert chosen[:4] == [members[0].id, members[1].id, members[2].id, members[0].id]


class TestLoadBalanced:

    @pytest.fixture
    def balanced_link(self, team_link):
        team_link.assignment_type = "load_balanced"
        team_link.save()
        return team_link

    def test_member_with_fewest_events_wins(self, balanced_link, members, make_event):
        alice, bob, carol = members
        make_event(alice, at(3, 9), at(3, 10))
        make_event(alice, at(4, 9), at(4, 10))
        make_event(bob, at(4, 11), at(4, 12))
        make_event(carol, at(4, 13), at(4, 14))
        make_event(carol, at(6, 13), at(6, 14))

        assert resolve_assignee(balanced_link, SLOT) == bob.id

    def test_ties_go_to_first_member(self, balanced_link, members, make_event):
        alice, bob, carol = members
        make_event(alice, at(3, 9), at(3, 10))

        results = {resolve_assignee(balanced_link, SLOT) for _ in range(5)}
        assert results == {bob.id}

    def test_all_equal_picks_first_listed(self, balanced_link, members):
        assert resolve_assignee(balanced_link, SLOT) == members[0].id

    def test_events_outside_the_week_are_ignored(self, balanced_link, members, make_event):
        alice, bob, _ = members
        # Previous week and following Monday
        make_event(bob, at(2, 9), at(2, 10))
        make_event(bob, at(10, 9), at(10, 10))
        make_event(alice, at(5, 9), at(5, 10))

        assert resolve_assignee(balanced_link, SLOT) == bob.id

    def test_cancelled_events_are_ignored(self, balanced_link, members, make_event):
        alice, bob, _ = members
        make_event(alice, at(4, 9), at(4, 10), status="cancelled")
        make_event(bob, at(4, 9), at(4, 10))

        assert resolve_assignee(balanced_link, SLOT) == alice.id

    def test_busy_member_is_skipped(self, balanced_link, members, make_event):
        alice, bob, carol = members
        make_event(carol, at(4, 9), at(4, 10))

        assert resolve_assignee(balanced_link, SLOT, busy_member_ids={alice.id, bob.id}) == carol.id

    def test_no_eligible_members_returns_none(self, balanced_link):
        balanced_link.hosts.all().delete()
        assert resolve_assignee(balanced_link, SLOT) is None

    def test_weekly_counts(self, members, make_event):
        alice, bob, carol = members
        make_event(alice, at(4, 9), at(4, 10))
        make_event(alice, at(7, 9), at(7, 10))

        counts = get_weekly_event_counts([alice.id, bob.id, carol.id], SLOT, "UTC")
        assert counts == {alice.id: 2, bob.id: 0, carol.id: 0}
