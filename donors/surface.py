# donors/surface.py
"""
Notification surfaces: where a donor or hospital actually sees an alert.

A surface's show() may return the action the user picked ('accept' or
'decline'); SurfaceBridge feeds that back into the response tracker as
if the donor had answered in the app.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.module_loading import import_string

from algorithms.exceptions import ValidationError
from donors.models import DonorProfile
from hospitals.models import BloodRequest

DONOR_ACTIONS = (
    {'action': 'accept', 'title': 'Accept'},
    {'action': 'decline', 'title': 'Decline'},
)

ACTION_STATUSES = {
    'accept': 'accepted',
    'decline': 'declined',
}

logger = logging.getLogger(__name__)


class NotificationSurface:
    def show(self, title, body, actions=(), data=None):
        """
        Present a notification.

        Returns:
            The chosen action name, or None if the answer comes later
        """
        raise NotImplementedError


class ConsoleSurface(NotificationSurface):
    """Logs notifications; handy for development"""

    def show(self, title, body, actions=(), data=None):
        logger.info("[notification] %s\n%s", title, body)
        return None


class EmailSurface(NotificationSurface):
    """Sends the notification by e-mail; answers arrive through the API"""

    def show(self, title, body, actions=(), data=None):
        data = data or {}
        recipient = data.get('email')
        if not recipient:
            logger.warning("No e-mail address for %s notification; skipped", data.get('type', 'unknown'))
            return None

        if actions:
            body = f"{body}\n\nRespond here: {settings.SITE_URL}/api/blood-requests/{data.get('request_id')}/respond/"

        send_mail(
            subject=title,
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
        logger.info("Notification e-mail sent to %s", recipient)
        return None


def load_surface(path):
    return import_string(path)()


class SurfaceBridge:
    """Connects a surface with the response tracker"""

    def __init__(self, surface, tracker):
        self.surface = surface
        self.tracker = tracker

    def notify_donor(self, response):
        blood_request = response.blood_request
        donor = response.donor
        data = {
            'type': 'emergency_request',
            'request_id': blood_request.pk,
            'donor_id': donor.pk,
            'response_id': response.pk,
            'email': donor.user.email,
        }
        action = self.surface.show(
            f"🚨 Emergency Blood Request: {blood_request.blood_type}",
            response.message,
            actions=DONOR_ACTIONS,
            data=data,
        )
        if action:
            return self.handle_action(action, data)
        return None

    def notify_requester(self, response):
        blood_request = response.blood_request
        status_text = 'accepted' if response.status == 'accepted' else 'declined'
        emoji = '✅' if status_text == 'accepted' else '❌'
        body = (
            f"{response.donor.full_name} has {status_text} your "
            f"{blood_request.blood_type} blood request."
        )
        return self.surface.show(
            f"{emoji} Donor Response",
            body,
            data={
                'type': 'donor_response',
                'response_id': response.pk,
                'request_id': blood_request.pk,
                'email': blood_request.hospital.user.email,
            },
        )

    def handle_action(self, action, data):
        """
        Apply an accept/decline picked on the surface.

        Raises:
            ValidationError: unknown action or missing ids
        """
        status = ACTION_STATUSES.get(action)
        if status is None:
            raise ValidationError(f"Unknown notification action: {action!r}")
        try:
            blood_request = BloodRequest.objects.get(pk=data['request_id'])
            donor = DonorProfile.objects.get(pk=data['donor_id'])
        except (KeyError, BloodRequest.DoesNotExist, DonorProfile.DoesNotExist) as exc:
            raise ValidationError(f"Notification action refers to unknown records: {data}") from exc

        logger.info("Surface action %s from donor %s on request %s", action, donor.pk, blood_request.pk)
        return self.tracker.respond(blood_request, donor, status)
