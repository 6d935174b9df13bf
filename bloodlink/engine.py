# bloodlink/engine.py
"""
The emergency engine: one object holding matcher, dispatcher, tracker and
the real-time connection manager, built once at startup and passed to
whoever needs it.
"""
import logging

from django.conf import settings

from algorithms.exceptions import NoCandidatesError, ValidationError
from donors.models import DonorProfile
from donors.surface import SurfaceBridge, load_surface
from donors.tracker import ResponseTracker
from hospitals.dispatch import NotificationDispatcher
from hospitals.matching import DEFAULT_MAX_RESULTS, DEFAULT_SEARCH_RADIUS_KM, DonorMatcher
from realtime.connections import ConnectionManager
from realtime.feed import DONOR_RESPONSES

EMERGENCY_NOTIFY_LIMIT = 10

logger = logging.getLogger(__name__)


def queue_delivery(response_id):
    from donors.tasks import deliver_notification
    deliver_notification.delay(response_id)


def queue_requester_notice(response_id):
    from donors.tasks import notify_requester
    notify_requester.delay(response_id)


class EmergencyEngine:
    def __init__(self, matcher, dispatcher, tracker, connections, bridge=None):
        self.matcher = matcher
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.connections = connections
        self.bridge = bridge
        self.system_subscriptions = []

    def find_matching_donors(self, blood_request, **kwargs):
        return self.matcher.find_matching_donors(blood_request, **kwargs)

    def dispatch(self, blood_request, donors):
        return self.dispatcher.dispatch(blood_request, donors)

    def respond(self, blood_request, donor, status, message=''):
        return self.tracker.respond(blood_request, donor, status, message)

    def cancel_request(self, blood_request):
        return self.tracker.cancel_request(blood_request)

    def start_emergency_workflow(self, blood_request, search_radius_km=None, limit=EMERGENCY_NOTIFY_LIMIT):
        """
        Match a request and notify the best eligible donors.

        Args:
            blood_request (BloodRequest): Open request to fill
            search_radius_km (float): Overrides the request/donor radius
            limit (int): How many of the top eligible donors to notify

        Returns:
            dict summary: success, donors_found, eligible_count,
            notifications_sent, failures and the notified donors

        Raises:
            NoCandidatesError: no compatible, eligible donor in range
        """
        logger.info("🚨 Emergency workflow for request %s (%s, %s)",
                    blood_request.pk, blood_request.blood_type, blood_request.urgency)

        candidates = self.matcher.find_matching_donors(
            blood_request, search_radius_km=search_radius_km, include_ineligible=True
        )
        eligible = [candidate for candidate in candidates if candidate.is_eligible]
        if not eligible:
            raise NoCandidatesError(
                f"No eligible {blood_request.blood_type}-compatible donors for request {blood_request.pk} "
                f"({len(candidates)} compatible in range)",
                request_id=blood_request.pk,
                donors_found=len(candidates),
            )

        selected = eligible[:limit] if limit else eligible
        result = self.dispatcher.dispatch(blood_request, selected)

        logger.info("✅ Request %s: notified %d of %d eligible donors",
                    blood_request.pk, len(result.notifications), len(eligible))
        return {
            'success': True,
            'request_id': blood_request.pk,
            'donors_found': len(candidates),
            'eligible_count': len(eligible),
            'notifications_sent': len(result.notifications),
            'failures': [{'donor_id': f.donor_id, 'error': str(f.error)} for f in result.failures],
            'activated': result.activated,
            'donors': selected,
        }

    def notify_selected(self, blood_request, donor_ids):
        """
        Notify hand-picked donors, with distance and score from a fresh match.

        Raises:
            ValidationError: empty selection or unknown donor ids
        """
        donor_ids = [int(donor_id) for donor_id in donor_ids]
        if not donor_ids:
            raise ValidationError(f"No donors selected for request {blood_request.pk}")

        donors = {donor.pk: donor for donor in DonorProfile.objects.filter(pk__in=donor_ids)}
        missing = [donor_id for donor_id in donor_ids if donor_id not in donors]
        if missing:
            raise ValidationError(f"Unknown donors: {missing}", donor_ids=missing)

        ranked = {
            candidate.donor_id: candidate
            for candidate in self.matcher.find_matching_donors(blood_request, include_ineligible=True)
        }
        selection = [ranked.get(donor_id, donors[donor_id]) for donor_id in donor_ids]
        return self.dispatcher.dispatch(blood_request, selection)

    def shutdown(self):
        for handle in self.system_subscriptions:
            self.connections.unsubscribe(handle)
        self.system_subscriptions = []


def build_engine(options=None, connections=None, deliver=queue_delivery):
    """
    Wire up an engine from the BLOODLINK settings.

    Args:
        options (dict): Overrides for settings.BLOODLINK
        connections (ConnectionManager): Shared manager; a private one is
            created when omitted
        deliver: Callback taking a DonorResponse id after commit
    """
    config = dict(getattr(settings, 'BLOODLINK', {}))
    config.update(options or {})

    connections = connections or ConnectionManager(buffer_size=config.get('SUBSCRIPTION_BUFFER', 100))
    tracker = ResponseTracker(guard_fulfillment=config.get('GUARD_FULFILLMENT', True))
    engine = EmergencyEngine(
        matcher=DonorMatcher(
            default_radius_km=config.get('DEFAULT_SEARCH_RADIUS_KM', DEFAULT_SEARCH_RADIUS_KM),
            max_results=config.get('MAX_RESULTS', DEFAULT_MAX_RESULTS),
        ),
        dispatcher=NotificationDispatcher(deliver=deliver),
        tracker=tracker,
        connections=connections,
        bridge=SurfaceBridge(
            load_surface(config.get('NOTIFICATION_SURFACE', 'donors.surface.ConsoleSurface')),
            tracker,
        ),
    )

    if config.get('NOTIFY_REQUESTERS', True):
        def forward_answer(event):
            queue_requester_notice(event.payload['id'])

        engine.system_subscriptions.append(
            connections.subscribe(DONOR_RESPONSES, {'status': ['accepted', 'declined']}, forward_answer)
        )

    if not config.get('GUARD_FULFILLMENT', True):
        logger.warning("Fulfilment guard disabled: concurrent acceptances may record duplicate donations")
    return engine
