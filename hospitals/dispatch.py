# hospitals/dispatch.py
"""
Notification dispatch for matched donors.

Each donor is handled on its own: one failing write is recorded and
logged, the rest of the batch carries on. A batch where nothing could be
written is a hard failure.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction

from algorithms.exceptions import AggregateFailure, ValidationError
from algorithms.haversine import estimate_travel_time, format_distance, haversine_distance
from algorithms.priority import MatchCandidate, score_candidate
from donors.models import DonorResponse
from hospitals.models import BloodRequest

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    """Result of notifying one donor: either a response row or an error"""
    donor_id: int
    response: Optional[DonorResponse] = None
    error: Optional[Exception] = None
    created: bool = False

    @property
    def ok(self):
        return self.error is None


@dataclass
class DispatchResult:
    request_id: int
    outcomes: List[DispatchOutcome] = field(default_factory=list)
    activated: bool = False

    @property
    def notifications(self):
        return [outcome.response for outcome in self.outcomes if outcome.ok]

    @property
    def failures(self):
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def partial(self):
        return bool(self.failures) and bool(self.notifications)


def build_notification_message(blood_request, donor, distance_km=None, travel_time=None):
    """Personalised text for a donor, used for the record and the surface"""
    hospital = blood_request.hospital
    urgency_text = 'CRITICAL EMERGENCY' if blood_request.urgency == 'critical' else blood_request.urgency.upper()

    lines = [
        f"🚨 {urgency_text} BLOOD REQUEST 🚨",
        "",
        f"Blood Type Needed: {blood_request.blood_type}",
        f"Units Needed: {blood_request.units_needed}",
        f"Hospital: {hospital.hospital_name or 'Local Hospital'}",
        f"Location: {hospital.city or hospital.address or 'Your Area'}",
    ]
    if blood_request.patient_age and blood_request.patient_name:
        lines.append(f"Patient: {blood_request.patient_name}, {blood_request.patient_age} years old")

    if distance_km is not None:
        lines.append(f"Distance: {format_distance(distance_km)} from you")
        if travel_time:
            lines.append(f"Estimated travel time: {travel_time['formatted']}")

    lines.extend([
        "",
        f"Your blood type ({donor.blood_type}) is compatible!",
        "Please respond ASAP if you can help.",
    ])
    return "\n".join(lines)


class NotificationDispatcher:
    """
    Writes notification records for selected donors and activates the request.

    Args:
        deliver: Called with a DonorResponse id once the row is committed,
            to push the notification to the donor. None disables delivery.
    """

    def __init__(self, deliver=None):
        self.deliver = deliver

    def _as_candidate(self, blood_request, item):
        if isinstance(item, MatchCandidate):
            return item
        candidate = MatchCandidate(donor=item)
        if item.has_location and blood_request.has_location:
            candidate.distance_km = haversine_distance(
                blood_request.latitude, blood_request.longitude, item.latitude, item.longitude
            )
            candidate.travel_time = estimate_travel_time(candidate.distance_km)
        score_candidate(candidate, blood_request)
        return candidate

    def notify_donor(self, blood_request, candidate):
        """
        Upsert the (donor, request) notification row as 'notified'.

        Returns:
            (DonorResponse, created)
        """
        donor = candidate.donor
        message = build_notification_message(
            blood_request, donor, candidate.distance_km, candidate.travel_time
        )
        with transaction.atomic():
            response, created = DonorResponse.objects.update_or_create(
                donor=donor,
                blood_request=blood_request,
                defaults={
                    'status': DonorResponse.STATUS_NOTIFIED,
                    'message': message,
                    'distance_km': candidate.distance_km,
                    'priority_score': candidate.priority_score,
                    'responded_at': None,
                },
            )
            if self.deliver is not None:
                response_id = response.pk
                transaction.on_commit(lambda: self.deliver(response_id))
        return response, created

    def dispatch(self, blood_request, donors):
        """
        Notify each selected donor about a blood request.

        Args:
            blood_request (BloodRequest): Open request
            donors: MatchCandidate or DonorProfile objects, in priority order

        Returns:
            DispatchResult with per-donor outcomes

        Raises:
            ValidationError: request is closed or no donors were given
            AggregateFailure: not a single notification could be written
        """
        if not blood_request.is_open:
            raise ValidationError(
                f"Request {blood_request.pk} is {blood_request.status}; donors can no longer be notified"
            )

        donors = list(donors)
        if not donors:
            raise ValidationError(f"No donors selected for request {blood_request.pk}")

        logger.info("Notifying %d donors for request %s", len(donors), blood_request.pk)
        result = DispatchResult(request_id=blood_request.pk)

        for item in donors:
            candidate = self._as_candidate(blood_request, item)
            try:
                response, created = self.notify_donor(blood_request, candidate)
            except Exception as exc:
                logger.exception("Notification for donor %s on request %s failed", candidate.donor_id, blood_request.pk)
                result.outcomes.append(DispatchOutcome(donor_id=candidate.donor_id, error=exc))
                continue
            result.outcomes.append(DispatchOutcome(donor_id=candidate.donor_id, response=response, created=created))

        if not result.notifications:
            raise AggregateFailure(
                f"No notifications could be created for request {blood_request.pk} "
                f"({len(result.failures)} donors failed)",
                failures=result.failures,
                request_id=blood_request.pk,
            )

        if result.failures:
            logger.warning(
                "Request %s: %d of %d notifications failed",
                blood_request.pk, len(result.failures), len(result.outcomes)
            )

        if blood_request.status == BloodRequest.STATUS_PENDING:
            result.activated = blood_request.transition_to(BloodRequest.STATUS_ACTIVE)

        logger.info("Request %s: %d donors notified", blood_request.pk, len(result.notifications))
        return result
