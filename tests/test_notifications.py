"""Tests for the change notification channel and the subscriber-side view."""

import threading

import pytest

from models.errors import NotificationError
from models.outreach import Prospect
from orchestration.notifications import (
    ChangeNotificationChannel,
    EventKind,
    ProspectEvent,
    ProspectView,
)

from conftest import OTHER_OWNER, OWNER, prospect_data


def event(prospect_id="p-1", version=1, kind=EventKind.UPDATED, owner_id=OWNER, status="NOT_SENT"):
    state = None
    if kind is not EventKind.DELETED:
        state = {"id": prospect_id, "owner_id": owner_id, "outreach_status": status}
    return ProspectEvent(owner_id=owner_id, prospect_id=prospect_id, kind=kind,
                         new_state=state, version=version)


class TestChannel:

    def test_events_fan_out_to_every_subscriber_of_owner(self):
        channel = ChangeNotificationChannel(queue_size=10)
        first = channel.subscribe(OWNER)
        second = channel.subscribe(OWNER)
        other = channel.subscribe(OTHER_OWNER)

        delivered = channel.publish(event(kind=EventKind.CREATED))

        assert delivered == 2
        assert len(first.drain()) == 1
        assert len(second.drain()) == 1
        assert other.drain() == []

    def test_superseded_versions_are_dropped(self):
        channel = ChangeNotificationChannel(queue_size=10)
        sub = channel.subscribe(OWNER)

        channel.publish(event(version=1, kind=EventKind.CREATED))
        channel.publish(event(version=3))
        assert channel.publish(event(version=2)) == 0
        channel.publish(event(version=4))

        assert [e.version for e in sub.drain()] == [1, 3, 4]

    def test_order_is_per_prospect(self):
        channel = ChangeNotificationChannel(queue_size=10)
        sub = channel.subscribe(OWNER)

        channel.publish(event("a", version=5))
        channel.publish(event("b", version=1))
        channel.publish(event("a", version=6))

        assert [(e.prospect_id, e.version) for e in sub.drain()] == [("a", 5), ("b", 1), ("a", 6)]

    def test_versions_are_tracked_per_owner(self):
        channel = ChangeNotificationChannel(queue_size=10)
        other = channel.subscribe(OTHER_OWNER)

        channel.publish(event("p-1", version=5, owner_id=OWNER))
        delivered = channel.publish(event("p-1", version=1, owner_id=OTHER_OWNER))

        assert delivered == 1
        assert [e.version for e in other.drain()] == [1]

    def test_delete_forgets_tracked_version(self):
        channel = ChangeNotificationChannel(queue_size=10)

        channel.publish(event(version=1, kind=EventKind.CREATED))
        channel.publish(event(version=2))
        assert channel.tracked_count() == 1

        channel.publish(event(version=3, kind=EventKind.DELETED))
        assert channel.tracked_count() == 0

    def test_overflow_flags_resync(self):
        channel = ChangeNotificationChannel(queue_size=2)
        sub = channel.subscribe(OWNER)

        for version in range(1, 5):
            channel.publish(event(version=version))

        assert sub.needs_resync
        sub.acknowledge_resync()
        assert not sub.needs_resync

    def test_get_times_out_with_none(self):
        channel = ChangeNotificationChannel(queue_size=2)
        with channel.subscribe(OWNER) as sub:
            assert sub.get(timeout=0.01) is None

    def test_blocking_subscriber_wakes_on_publish(self):
        channel = ChangeNotificationChannel(queue_size=2)
        sub = channel.subscribe(OWNER)
        received = []
        reader = threading.Thread(target=lambda: received.append(sub.get(timeout=5)))
        reader.start()

        channel.publish(event(version=1))
        reader.join(timeout=5)

        assert [e.version for e in received] == [1]

    def test_unsubscribe_on_close(self):
        channel = ChangeNotificationChannel(queue_size=2)
        with channel.subscribe(OWNER):
            assert channel.subscriber_count(OWNER) == 1
        assert channel.subscriber_count(OWNER) == 0

    def test_closed_channel_rejects_publish_and_subscribe(self):
        channel = ChangeNotificationChannel(queue_size=2)
        sub = channel.subscribe(OWNER)
        channel.close()

        assert sub.closed
        with pytest.raises(NotificationError):
            channel.publish(event())
        with pytest.raises(NotificationError):
            channel.subscribe(OWNER)

    def test_event_from_prospect(self):
        prospect = Prospect(owner_id=OWNER, version=4, **prospect_data())

        created = ProspectEvent.for_prospect(prospect, EventKind.UPDATED)
        deleted = ProspectEvent.for_prospect(prospect, EventKind.DELETED)

        assert created.new_state["name"] == "Finance Conseil"
        assert created.version == 4
        assert deleted.new_state is None
        assert deleted.to_dict()["kind"] == "deleted"


class TestProspectView:

    def test_applies_only_newer_versions(self):
        view = ProspectView(OWNER)

        assert view.apply(event(version=2, status="PENDING"))
        assert not view.apply(event(version=2, status="PENDING"))
        assert not view.apply(event(version=1, status="NOT_SENT"))
        assert view.status_of("p-1") == "PENDING"

    def test_ignores_other_owners(self):
        view = ProspectView(OWNER)
        assert not view.apply(event(owner_id=OTHER_OWNER))
        assert view.prospects == {}

    def test_delete_then_late_update_stays_deleted(self):
        view = ProspectView(OWNER)
        view.apply(event(version=1, kind=EventKind.CREATED))
        view.apply(event(version=3, kind=EventKind.DELETED))

        assert not view.apply(event(version=2))
        assert view.status_of("p-1") is None

    def test_recreated_after_delete(self):
        view = ProspectView(OWNER)
        view.apply(event(version=5, kind=EventKind.CREATED))
        view.apply(event(version=6, kind=EventKind.DELETED))

        assert view.apply(event(version=1, kind=EventKind.CREATED))
        assert view.status_of("p-1") == "NOT_SENT"

    def test_view_converges_with_store(self, machine, channel, prospect):
        view = ProspectView(OWNER)
        view.load(machine.list_prospects(OWNER))

        with channel.subscribe(OWNER) as sub:
            machine.update_prospect(OWNER, prospect.id, {"name": "Renamed"})
            machine.begin_generation(OWNER, prospect.id)
            events = sub.drain()

        # Redelivery is harmless
        for e in events + events:
            view.apply(e)

        stored = machine.get_prospect(OWNER, prospect.id)
        assert view.versions[prospect.id] == stored.version
        assert view.prospects[prospect.id]["name"] == "Renamed"
        assert view.status_of(prospect.id) == "PENDING"

    def test_resync_reload_matches_store(self, machine, finance_offering):
        channel = ChangeNotificationChannel(queue_size=1)
        machine.channel = channel
        view = ProspectView(OWNER)
        sub = channel.subscribe(OWNER)

        for i in range(3):
            machine.create_prospect(OWNER, prospect_data(name=f"P{i}"))

        assert sub.needs_resync
        view.load(machine.list_prospects(OWNER))
        sub.acknowledge_resync()
        assert len(view.prospects) == 3
