import logging
from datetime import timedelta

from django.db.models import Count
from django.utils import timezone

from donors.models import DonorResponse
from hospitals.models import BloodRequest

DISTANCE_BUCKETS = (
    ('0-5km', 5),
    ('5-10km', 10),
    ('10-25km', 25),
)
OVERFLOW_BUCKET = '25km+'

# Logger setup
logger = logging.getLogger(__name__)


def distance_bucket(distance_km):
    for label, upper in DISTANCE_BUCKETS:
        if distance_km <= upper:
            return label
    return OVERFLOW_BUCKET


def response_stats(blood_request):
    """
    Summary of donor answers for one request.

    Awaiting counts both 'notified' and 'pending' rows. The average
    response time only covers donors who have answered.
    """
    responses = DonorResponse.objects.filter(blood_request=blood_request)

    stats = {
        'total_responses': 0,
        'accepted': 0,
        'declined': 0,
        'awaiting': 0,
        'cancelled': 0,
        'average_response_minutes': 0,
        'responses_by_distance': {label: 0 for label, _ in DISTANCE_BUCKETS},
    }
    stats['responses_by_distance'][OVERFLOW_BUCKET] = 0

    response_minutes = []
    for response in responses:
        stats['total_responses'] += 1
        if response.is_awaiting:
            stats['awaiting'] += 1
        elif response.status in stats:
            stats[response.status] += 1

        if response.response_time_minutes is not None:
            response_minutes.append(response.response_time_minutes)

        if response.distance_km is not None:
            stats['responses_by_distance'][distance_bucket(response.distance_km)] += 1

    if response_minutes:
        stats['average_response_minutes'] = round(sum(response_minutes) / len(response_minutes))

    return stats


def emergency_stats(hospital, hours=24):
    """Request counts for a hospital over the last `hours` hours"""
    since = timezone.now() - timedelta(hours=hours)
    requests = BloodRequest.objects.filter(hospital=hospital, created_at__gte=since)

    by_urgency = dict(requests.order_by().values_list('urgency').annotate(n=Count('id')))
    by_status = dict(requests.order_by().values_list('status').annotate(n=Count('id')))

    return {
        'total': sum(by_status.values()),
        'critical': by_urgency.get('critical', 0),
        'urgent': by_urgency.get('urgent', 0),
        'pending': by_status.get(BloodRequest.STATUS_PENDING, 0),
        'active': by_status.get(BloodRequest.STATUS_ACTIVE, 0),
        'fulfilled': by_status.get(BloodRequest.STATUS_FULFILLED, 0),
        'cancelled': by_status.get(BloodRequest.STATUS_CANCELLED, 0),
    }
