from datetime import timedelta

import pytest
from django.utils import timezone

from donors.models import DonorResponse
from donors.tracker import ResponseTracker
from hospitals.dispatch import NotificationDispatcher
from hospitals.models import BloodRequest
from realtime.channels import (
    donor_wants_request,
    subscribe_donor,
    subscribe_request_updates,
    subscribe_requester,
    time_ago,
)
from realtime.connections import ConnectionManager, Event
from realtime.feed import BLOOD_REQUESTS, DONOR_RESPONSES, REQUEST_UPDATES, ChangeFeed
from tests.conftest import km_north


def event(topic='t', kind='created', **payload):
    return Event(topic=topic, kind=kind, payload=payload)


class TestConnectionManager:

    def test_callback_receives_matching_events(self):
        manager = ConnectionManager()
        received = []
        manager.subscribe('t', {'blood_type': 'O+'}, received.append)

        assert manager.publish('t', event(blood_type='O+')) == 1
        assert manager.publish('t', event(blood_type='A+')) == 0
        assert manager.publish('other', event(blood_type='O+')) == 0
        assert [e.payload['blood_type'] for e in received] == ['O+']

    def test_list_filter_means_any_of(self):
        manager = ConnectionManager()
        handle = manager.subscribe('t', {'status': ['accepted', 'declined']})

        manager.publish('t', event(status='accepted'))
        manager.publish('t', event(status='notified'))
        manager.publish('t', event(status='declined'))

        assert [e.payload['status'] for e in handle.drain()] == ['accepted', 'declined']
        assert handle.drain() == []

    def test_buffer_drops_oldest(self):
        manager = ConnectionManager(buffer_size=2)
        handle = manager.subscribe('t')
        for n in range(3):
            manager.publish('t', event(n=n))

        assert [e.payload['n'] for e in handle.drain()] == [1, 2]
        assert handle.dropped == 1

    def test_unsubscribe_is_idempotent(self):
        manager = ConnectionManager()
        received = []
        handle = manager.subscribe('t', callback=received.append)

        assert manager.unsubscribe(handle) is True
        assert manager.unsubscribe(handle) is False
        assert manager.unsubscribe(None) is False
        assert handle.cancelled

        manager.publish('t', event())
        assert received == []
        assert manager.active_subscriptions() == []

    def test_failing_subscriber_does_not_stop_others(self):
        manager = ConnectionManager()
        received = []

        def explode(e):
            raise RuntimeError('socket closed')

        manager.subscribe('t', callback=explode)
        manager.subscribe('t', callback=received.append)

        assert manager.publish('t', event()) == 1
        assert len(received) == 1

    def test_unsubscribe_all(self):
        manager = ConnectionManager()
        handles = [manager.subscribe('a'), manager.subscribe('b')]

        assert manager.unsubscribe_all() == 2
        assert all(handle.cancelled for handle in handles)
        assert manager.active_subscriptions('a') == []


def test_time_ago():
    now = timezone.now()
    assert time_ago(now - timedelta(seconds=20), now) == 'Just now'
    assert time_ago(now - timedelta(minutes=5), now) == '5m ago'
    assert time_ago(now - timedelta(hours=3), now) == '3h ago'
    assert time_ago(now - timedelta(days=2), now) == '2d ago'
    assert time_ago((now - timedelta(minutes=5)).isoformat(), now) == '5m ago'
    assert time_ago(None) == ''


@pytest.mark.django_db
class TestChangeFeed:

    @pytest.fixture
    def manager(self):
        manager = ConnectionManager()
        feed = ChangeFeed(manager)
        feed.connect()
        yield manager
        feed.disconnect()

    def test_new_request_is_published_after_commit(self, manager, make_request, django_capture_on_commit_callbacks):
        handle = manager.subscribe(BLOOD_REQUESTS)

        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            blood_request = make_request('A-')
        assert handle.drain() == []

        for callback in callbacks:
            callback()
        events = handle.drain()
        assert [e.kind for e in events] == ['created']
        assert events[0].payload['id'] == blood_request.pk
        assert events[0].payload['blood_type'] == 'A-'
        assert events[0].payload['hospital_name'] == 'Bir Hospital'

    def test_status_change_is_published(self, manager, blood_request, django_capture_on_commit_callbacks):
        handle = manager.subscribe(REQUEST_UPDATES, {'hospital_id': blood_request.hospital_id})

        with django_capture_on_commit_callbacks(execute=True):
            blood_request.transition_to(BloodRequest.STATUS_CANCELLED)

        events = handle.drain()
        assert [e.kind for e in events] == ['status_changed']
        assert events[0].payload['status'] == 'cancelled'
        assert events[0].payload['previous_status'] == 'pending'

    def test_donor_responses_are_published(self, manager, make_donor, blood_request,
                                           django_capture_on_commit_callbacks):
        handle = manager.subscribe(DONOR_RESPONSES, {'request_id': blood_request.pk})
        donor = make_donor('O+')

        with django_capture_on_commit_callbacks(execute=True):
            NotificationDispatcher().dispatch(blood_request, [donor])
            ResponseTracker().decline(blood_request, donor)

        events = handle.drain()
        assert [(e.kind, e.payload['status']) for e in events] == [('created', 'notified'), ('updated', 'declined')]
        assert events[1].payload['donor_name'] == donor.full_name
        assert events[1].payload['blood_request']['units_needed'] == 2


@pytest.mark.django_db
class TestChannels:

    @pytest.fixture
    def manager(self):
        manager = ConnectionManager()
        feed = ChangeFeed(manager)
        feed.connect()
        yield manager
        feed.disconnect()

    def test_donor_alerted_for_nearby_urgent_request(self, manager, make_donor, make_request,
                                                      django_capture_on_commit_callbacks):
        donor = make_donor('O+', latitude=km_north(3))
        alerts = []
        subscribe_donor(manager, donor, alerts.append)

        with django_capture_on_commit_callbacks(execute=True):
            blood_request = make_request('O+', urgency='urgent', patient_age=40)
            make_request('O+', urgency='normal')
            make_request('A+', urgency='critical')

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert['id'] == blood_request.pk
        assert alert['distance_km'] == 3.0
        assert alert['hospital_name'] == 'Bir Hospital'
        assert alert['patient'] == {'age': 40, 'condition': ''}
        assert alert['time_ago'] == 'Just now'

    def test_donor_outside_radius_is_not_alerted(self, manager, make_donor, make_request,
                                                 django_capture_on_commit_callbacks):
        donor = make_donor('O+', latitude=km_north(30))
        alerts = []
        subscribe_donor(manager, donor, alerts.append)

        with django_capture_on_commit_callbacks(execute=True):
            make_request('O+')

        assert alerts == []

    def test_donor_who_becomes_unavailable_stops_getting_alerts(self, manager, make_donor, make_request,
                                                                django_capture_on_commit_callbacks):
        donor = make_donor('O+')
        alerts = []
        subscribe_donor(manager, donor, alerts.append)
        type(donor).objects.filter(pk=donor.pk).update(is_available=False)

        with django_capture_on_commit_callbacks(execute=True):
            make_request('O+')

        assert alerts == []

    def test_unavailable_donor_is_not_subscribed(self, manager, make_donor):
        assert subscribe_donor(manager, make_donor('O+', is_available=False), print) is None

    def test_donor_wants_request_without_location(self, make_donor):
        donor = make_donor('O+', latitude=None, longitude=None)
        assert donor_wants_request(donor, {'urgency': 'critical', 'latitude': 27.7, 'longitude': 85.3}) == (True, None)

    def test_requester_sees_only_answers(self, manager, make_donor, blood_request,
                                         django_capture_on_commit_callbacks):
        answers = []
        subscribe_requester(manager, blood_request.hospital, answers.append)
        updates = []
        subscribe_request_updates(manager, blood_request.hospital, updates.append)
        donors = [make_donor('O+'), make_donor('O-')]

        with django_capture_on_commit_callbacks(execute=True):
            NotificationDispatcher().dispatch(blood_request, donors)
            ResponseTracker().decline(blood_request, donors[0])
            ResponseTracker().accept(blood_request, donors[1])

        assert [(a['donor_id'], a['status']) for a in answers] == [
            (donors[0].pk, 'declined'),
            (donors[1].pk, 'accepted'),
        ]
        assert [u.payload['status'] for u in updates if u.kind == 'status_changed'] == ['active', 'fulfilled']

    def test_unsubscribed_requester_gets_nothing(self, manager, make_donor, blood_request,
                                                 django_capture_on_commit_callbacks):
        answers = []
        handle = subscribe_requester(manager, blood_request.hospital, answers.append)
        manager.unsubscribe(handle)

        with django_capture_on_commit_callbacks(execute=True):
            ResponseTracker().decline(blood_request, make_donor('O+'))

        assert answers == []
