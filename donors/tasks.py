# donors/tasks.py
"""
Celery tasks for donor notifications
"""
import logging

from celery import shared_task
from django.apps import apps

from algorithms.exceptions import MatchingError
from donors.models import DonorResponse
from hospitals.models import BloodRequest

logger = logging.getLogger(__name__)


def get_engine():
    return apps.get_app_config('api').engine


@shared_task
def deliver_notification(response_id):
    """
    Push a stored notification to the donor through the configured surface.
    Called once the DonorResponse row has been committed.
    """
    try:
        response = DonorResponse.objects.select_related(
            'donor', 'donor__user', 'blood_request', 'blood_request__hospital'
        ).get(pk=response_id)
    except DonorResponse.DoesNotExist:
        return f"Notification {response_id} not found"

    if not response.is_awaiting:
        return f"Notification {response_id} already {response.status}"

    get_engine().bridge.notify_donor(response)
    return f"Notified {response.donor.full_name} for request #{response.blood_request_id}"


@shared_task
def notify_requester(response_id):
    """Tell the hospital a donor answered"""
    try:
        response = DonorResponse.objects.select_related(
            'donor', 'blood_request', 'blood_request__hospital', 'blood_request__hospital__user'
        ).get(pk=response_id)
    except DonorResponse.DoesNotExist:
        return f"Response {response_id} not found"

    if response.status not in DonorResponse.ANSWER_STATUSES:
        return f"Response {response_id} is {response.status}; nothing to report"

    get_engine().bridge.notify_requester(response)
    return f"Hospital told: {response.donor.full_name} {response.status} request #{response.blood_request_id}"


@shared_task
def run_emergency_workflow(blood_request_id):
    """Match and notify donors for a new request in the background"""
    try:
        blood_request = BloodRequest.objects.select_related('hospital').get(pk=blood_request_id)
    except BloodRequest.DoesNotExist:
        return f"Blood request {blood_request_id} not found"

    try:
        summary = get_engine().start_emergency_workflow(blood_request)
    except MatchingError as exc:
        logger.error("Emergency workflow for request %s failed: %s", blood_request_id, exc)
        return f"Error: {exc}"

    return (
        f"Request {blood_request_id}: {summary['notifications_sent']} of "
        f"{summary['donors_found']} donors notified"
    )
