from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.utils import timezone

from algorithms.exceptions import ConflictError, DependencyError, ValidationError
from donors.models import DonationHistory, DonorHospitalConnection, DonorResponse
from donors.tracker import ResponseTracker
from hospitals.dispatch import NotificationDispatcher
from hospitals.models import BloodRequest

pytestmark = pytest.mark.django_db


@pytest.fixture
def tracker():
    return ResponseTracker()


@pytest.fixture
def notified(make_donor, blood_request):
    """Request with three notified donors"""
    donors = [make_donor('O+'), make_donor('O-'), make_donor('O+')]
    NotificationDispatcher().dispatch(blood_request, donors)
    return blood_request, donors


def status_of(donor, blood_request):
    return DonorResponse.objects.get(donor=donor, blood_request=blood_request).status


def test_acceptance_fulfils_request(tracker, notified):
    blood_request, (winner, other, third) = notified
    now = timezone.now()

    response = tracker.accept(blood_request, winner, message='On my way', now=now)

    assert response.status == DonorResponse.STATUS_ACCEPTED
    assert response.message == 'On my way'
    assert response.responded_at == now
    blood_request.refresh_from_db()
    assert blood_request.status == BloodRequest.STATUS_FULFILLED
    assert status_of(other, blood_request) == DonorResponse.STATUS_CANCELLED
    assert status_of(third, blood_request) == DonorResponse.STATUS_CANCELLED


def test_acceptance_side_effects(tracker, notified):
    blood_request, (winner, *_) = notified

    tracker.accept(blood_request, winner)

    winner.refresh_from_db()
    assert winner.last_donation_date == timezone.localdate()
    assert winner.donation_count == 1
    assert winner.is_available is False
    # critical request: emergency cooldown starts
    assert winner.last_emergency_response_date is not None

    history = DonationHistory.objects.get(donor=winner)
    assert history.blood_request == blood_request
    assert history.hospital == blood_request.hospital
    assert history.units_donated == 2
    assert history.amount_ml == 900
    assert history.blood_type == 'O+'
    assert history.notes == 'Emergency blood donation'

    assert DonorHospitalConnection.objects.filter(
        donor=winner, hospital=blood_request.hospital, blood_request=blood_request
    ).exists()


def test_normal_request_does_not_start_emergency_cooldown(tracker, make_donor, make_request):
    blood_request = make_request(urgency='normal')
    donor = make_donor('O+')

    tracker.accept(blood_request, donor)

    donor.refresh_from_db()
    assert donor.last_emergency_response_date is None
    assert DonationHistory.objects.get(donor=donor).notes == ''


def test_accepting_twice_is_a_no_op(tracker, notified):
    blood_request, (winner, *_) = notified

    tracker.accept(blood_request, winner)
    tracker.accept(blood_request, winner)

    assert DonationHistory.objects.filter(donor=winner).count() == 1


@pytest.mark.parametrize('status', ['declined', 'pending'])
def test_acceptance_cannot_be_taken_back(tracker, notified, status):
    blood_request, (winner, *_) = notified
    tracker.accept(blood_request, winner)

    with pytest.raises(ConflictError):
        tracker.respond(blood_request, winner, status)

    assert status_of(winner, blood_request) == DonorResponse.STATUS_ACCEPTED
    blood_request.refresh_from_db()
    assert blood_request.status == BloodRequest.STATUS_FULFILLED
    assert DonationHistory.objects.filter(donor=winner).count() == 1


def test_fulfilled_request_takes_no_more_declines(tracker, notified):
    blood_request, (winner, other, _) = notified
    tracker.accept(blood_request, winner)

    with pytest.raises(ConflictError):
        tracker.decline(blood_request, other)

    assert status_of(other, blood_request) == DonorResponse.STATUS_CANCELLED


def test_second_acceptance_conflicts(tracker, notified):
    blood_request, (winner, loser, _) = notified
    tracker.accept(blood_request, winner)

    with pytest.raises(ConflictError):
        tracker.accept(blood_request, loser)

    assert status_of(loser, blood_request) == DonorResponse.STATUS_CANCELLED
    assert DonationHistory.objects.filter(blood_request=blood_request).count() == 1
    loser.refresh_from_db()
    assert loser.is_available is True


def test_unguarded_mode_lets_both_acceptances_through(notified, caplog):
    tracker = ResponseTracker(guard_fulfillment=False)
    blood_request, (first, second, _) = notified

    tracker.accept(blood_request, first)
    tracker.accept(blood_request, second)

    assert DonationHistory.objects.filter(blood_request=blood_request).count() == 2
    assert status_of(first, blood_request) == DonorResponse.STATUS_ACCEPTED
    assert status_of(second, blood_request) == DonorResponse.STATUS_ACCEPTED
    assert 'runs unguarded' in caplog.text


def test_decline_has_no_side_effects(tracker, notified):
    blood_request, (donor, other, _) = notified

    response = tracker.decline(blood_request, donor, message='Travelling')

    assert response.status == DonorResponse.STATUS_DECLINED
    assert response.responded_at is not None
    blood_request.refresh_from_db()
    assert blood_request.status == BloodRequest.STATUS_ACTIVE
    assert status_of(other, blood_request) == DonorResponse.STATUS_NOTIFIED
    donor.refresh_from_db()
    assert donor.is_available is True
    assert not DonationHistory.objects.exists()


def test_pending_answer(tracker, notified):
    blood_request, (donor, *_) = notified
    assert tracker.respond(blood_request, donor, 'pending').status == DonorResponse.STATUS_PENDING


def test_response_without_notification_is_recorded(tracker, make_donor, blood_request):
    donor = make_donor('O-')
    tracker.decline(blood_request, donor)
    assert status_of(donor, blood_request) == DonorResponse.STATUS_DECLINED


def test_response_time_minutes(tracker, notified):
    blood_request, (donor, *_) = notified
    created = DonorResponse.objects.get(donor=donor, blood_request=blood_request).created_at

    response = tracker.decline(blood_request, donor, now=created + timedelta(minutes=12))

    assert response.response_time_minutes == 12


@pytest.mark.parametrize('status', ['maybe', 'cancelled', 'notified', ''])
def test_invalid_status(tracker, notified, status):
    blood_request, (donor, *_) = notified
    with pytest.raises(ValidationError):
        tracker.respond(blood_request, donor, status)


def test_cancel_withdraws_notifications(tracker, notified):
    blood_request, donors = notified
    tracker.decline(blood_request, donors[0])

    withdrawn = tracker.cancel_request(blood_request)

    assert withdrawn == 2
    assert blood_request.status == BloodRequest.STATUS_CANCELLED
    assert status_of(donors[0], blood_request) == DonorResponse.STATUS_DECLINED
    assert status_of(donors[1], blood_request) == DonorResponse.STATUS_CANCELLED


def test_responses_to_cancelled_request_are_rejected(tracker, notified):
    blood_request, (donor, *_) = notified
    tracker.cancel_request(blood_request)

    with pytest.raises(ValidationError):
        tracker.accept(blood_request, donor)


def test_closed_request_cannot_be_cancelled(tracker, notified):
    blood_request, (donor, *_) = notified
    tracker.accept(blood_request, donor)

    with pytest.raises(ValidationError):
        tracker.cancel_request(blood_request)


def test_store_failure_becomes_dependency_error(tracker, notified, monkeypatch):
    blood_request, (donor, *_) = notified

    def broken(*args, **kwargs):
        raise DatabaseError('disk I/O error')

    monkeypatch.setattr(DonorResponse.objects, 'update_or_create', broken)
    with pytest.raises(DependencyError):
        tracker.decline(blood_request, donor)
