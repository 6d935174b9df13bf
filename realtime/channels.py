# realtime/channels.py
"""
Session-facing channels on top of the connection manager.

Donor channel: the manager filters on exact blood type; the rest
(urgency, radius, availability) needs the donor's own data and is checked
here before the callback runs.

Requester channel: response changes on the hospital's own requests,
without the bookkeeping rows that only say a donor was notified.
"""
import logging

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from algorithms.haversine import haversine_distance
from donors.models import DonorResponse
from realtime.feed import BLOOD_REQUESTS, DONOR_RESPONSES, REQUEST_UPDATES

ALERT_URGENCIES = ('critical', 'urgent')

logger = logging.getLogger(__name__)


def time_ago(timestamp, now=None):
    if isinstance(timestamp, str):
        timestamp = parse_datetime(timestamp)
    if timestamp is None:
        return ''
    now = now or timezone.now()
    seconds = int((now - timestamp).total_seconds())

    if seconds < 60:
        return 'Just now'
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def request_distance(donor, payload):
    if not donor.has_location or payload.get('latitude') is None or payload.get('longitude') is None:
        return None
    return haversine_distance(donor.latitude, donor.longitude, payload['latitude'], payload['longitude'])


def donor_wants_request(donor, payload):
    """
    Fine filter for the donor channel.

    Returns:
        (bool, distance_km or None)
    """
    if payload.get('urgency') not in ALERT_URGENCIES:
        return False, None
    if not donor.is_available:
        return False, None

    distance = request_distance(donor, payload)
    if distance is not None and distance > donor.availability_radius_km:
        logger.debug(
            "Request %s outside donor %s radius (%.1f km > %.1f km)",
            payload.get('id'), donor.pk, distance, donor.availability_radius_km
        )
        return False, distance
    return True, distance


def emergency_alert(payload, distance):
    return {
        'id': payload['id'],
        'blood_type': payload['blood_type'],
        'urgency': payload['urgency'],
        'hospital_name': payload.get('hospital_name') or 'Unknown Hospital',
        'distance_km': round(distance, 1) if distance is not None else None,
        'time_ago': time_ago(payload.get('created_at')),
        'units_needed': payload.get('units_needed'),
        'patient': {'age': payload.get('patient_age'), 'condition': payload.get('condition')},
        'hospital_location': {'address': payload.get('hospital_address'), 'city': payload.get('hospital_city')},
        'needed_by': payload.get('needed_by'),
        'contact_phone': payload.get('contact_phone'),
    }


def subscribe_donor(connections, donor, callback):
    """
    Alert a donor session about new urgent requests they could answer.

    Returns:
        SubscriptionHandle, or None if the donor cannot receive alerts
    """
    if not donor.blood_type:
        logger.warning("Donor %s has no blood type; not subscribing", donor.pk)
        return None
    if not donor.is_available:
        logger.info("Donor %s is unavailable; not subscribing", donor.pk)
        return None

    def deliver(event):
        if event.kind != 'created':
            return
        donor.refresh_from_db(fields=['is_available', 'latitude', 'longitude', 'availability_radius_km'])
        wanted, distance = donor_wants_request(donor, event.payload)
        if wanted:
            callback(emergency_alert(event.payload, distance))

    return connections.subscribe(BLOOD_REQUESTS, {'blood_type': donor.blood_type}, deliver)


def subscribe_requester(connections, hospital, callback):
    """Deliver accepted/declined answers on the hospital's requests"""
    def deliver(event):
        if event.payload.get('status') not in DonorResponse.ANSWER_STATUSES:
            return
        callback(event.payload)

    return connections.subscribe(DONOR_RESPONSES, {'hospital_id': hospital.pk}, deliver)


def subscribe_request_updates(connections, hospital, callback):
    """Every change to a request the hospital owns"""
    return connections.subscribe(REQUEST_UPDATES, {'hospital_id': hospital.pk}, callback)
