# donors/tracker.py
"""
Donor response state machine.

    notified / pending  ->  accepted | declined
    notified / pending  ->  cancelled   (another donor fulfilled the request)

Accepted is final for the donor, and a fulfilled request takes no
further declines or pending answers.

Acceptance fulfils the request and runs the fulfilment side effects.
"""
import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from algorithms.exceptions import ConflictError, DependencyError, ValidationError
from donors.models import DonationHistory, DonorHospitalConnection, DonorResponse
from hospitals.models import BloodRequest

RESPONSE_STATUSES = (
    DonorResponse.STATUS_PENDING,
    DonorResponse.STATUS_ACCEPTED,
    DonorResponse.STATUS_DECLINED,
)

logger = logging.getLogger(__name__)


class ResponseTracker:
    """
    Records donor answers and applies what follows from them.

    Args:
        guard_fulfillment: When True the move to 'fulfilled' is a
            conditional update and a second, concurrent acceptance gets a
            ConflictError. When False every acceptance runs the full
            side-effect chain, even on an already fulfilled request.
    """

    def __init__(self, guard_fulfillment=True):
        self.guard_fulfillment = guard_fulfillment

    def respond(self, blood_request, donor, status, message='', now=None):
        """
        Record a donor's answer to a blood request.

        Args:
            blood_request (BloodRequest): The request answered
            donor (DonorProfile): The answering donor
            status (str): 'accepted', 'declined' or 'pending'
            message (str): Optional note from the donor

        Returns:
            The DonorResponse row (created or updated)

        Raises:
            ValidationError: unknown status or cancelled request
            ConflictError: someone else already fulfilled the request, or the
                donor tries to take back an acceptance
            DependencyError: the store failed
        """
        if status not in RESPONSE_STATUSES:
            raise ValidationError(f"Invalid response status: {status!r}", status=status)

        now = now or timezone.now()
        try:
            blood_request.refresh_from_db(fields=['status'])
            if blood_request.status == BloodRequest.STATUS_CANCELLED:
                raise ValidationError(f"Request {blood_request.pk} has been cancelled")

            existing = DonorResponse.objects.filter(donor=donor, blood_request=blood_request).first()
            if status == DonorResponse.STATUS_ACCEPTED:
                return self._accept(blood_request, donor, existing, message, now)

            if existing is not None and existing.status == DonorResponse.STATUS_ACCEPTED:
                raise ConflictError(
                    f"Donor {donor.pk} already accepted request {blood_request.pk}",
                    request_id=blood_request.pk,
                    donor_id=donor.pk,
                    status=status,
                )
            if blood_request.status == BloodRequest.STATUS_FULFILLED:
                raise ConflictError(
                    f"Request {blood_request.pk} is already fulfilled",
                    request_id=blood_request.pk,
                    donor_id=donor.pk,
                    status=status,
                )
            return self._record(blood_request, donor, status, message, now)
        except DatabaseError as exc:
            raise DependencyError(
                f"Could not record response of donor {donor.pk} to request {blood_request.pk}: {exc}"
            ) from exc

    def accept(self, blood_request, donor, message='', now=None):
        return self.respond(blood_request, donor, DonorResponse.STATUS_ACCEPTED, message, now)

    def decline(self, blood_request, donor, message='', now=None):
        return self.respond(blood_request, donor, DonorResponse.STATUS_DECLINED, message, now)

    def _record(self, blood_request, donor, status, message, now):
        response, created = DonorResponse.objects.update_or_create(
            donor=donor,
            blood_request=blood_request,
            defaults={
                'status': status,
                'message': message,
                'responded_at': now,
            },
        )
        logger.info(
            "Donor %s %s request %s%s",
            donor.pk, status, blood_request.pk, "" if not created else " (no prior notification)"
        )
        return response

    def _accept(self, blood_request, donor, existing, message, now):
        if existing is not None and existing.status == DonorResponse.STATUS_ACCEPTED:
            # Same donor pressing accept again
            return existing

        with transaction.atomic():
            won = blood_request.transition_to(BloodRequest.STATUS_FULFILLED)
            if not won:
                if self.guard_fulfillment:
                    raise ConflictError(
                        f"Request {blood_request.pk} was already fulfilled by another donor",
                        request_id=blood_request.pk,
                        donor_id=donor.pk,
                    )
                logger.warning(
                    "Request %s already %s; donor %s acceptance runs unguarded",
                    blood_request.pk, blood_request.status, donor.pk
                )

            response = self._record(blood_request, donor, DonorResponse.STATUS_ACCEPTED, message, now)
            self._fulfil(blood_request, donor, now)

        return response

    def _fulfil(self, blood_request, donor, now):
        superseded = DonorResponse.objects.filter(
            blood_request=blood_request,
            status__in=DonorResponse.AWAITING_STATUSES,
        ).exclude(donor=donor).update(status=DonorResponse.STATUS_CANCELLED, updated_at=now)

        DonorHospitalConnection.objects.get_or_create(
            donor=donor,
            blood_request=blood_request,
            defaults={'hospital': blood_request.hospital},
        )

        if blood_request.is_emergency:
            # Starts the 90-day emergency cooldown
            donor.last_emergency_response_date = now

        DonationHistory.objects.create(
            donor=donor,
            hospital=blood_request.hospital,
            blood_request=blood_request,
            date_donated=timezone.localdate(now),
            blood_type=blood_request.blood_type,
            units_donated=blood_request.units_needed,
            amount_ml=blood_request.units_needed * DonationHistory.ML_PER_UNIT,
            notes='Emergency blood donation' if blood_request.is_emergency else '',
        )

        donor.last_donation_date = timezone.localdate(now)
        donor.donation_count = donor.donation_history.count()
        donor.is_available = False
        donor.save(update_fields=[
            'last_emergency_response_date', 'last_donation_date',
            'donation_count', 'is_available', 'updated_at',
        ])

        logger.info(
            "Request %s fulfilled by donor %s; %d other notifications cancelled",
            blood_request.pk, donor.pk, superseded
        )

    def cancel_request(self, blood_request):
        """
        Cancel an open request and withdraw its outstanding notifications.

        Returns:
            Number of notifications cancelled
        """
        try:
            with transaction.atomic():
                if not blood_request.transition_to(BloodRequest.STATUS_CANCELLED):
                    raise ValidationError(
                        f"Request {blood_request.pk} is already {blood_request.status}"
                    )
                withdrawn = DonorResponse.objects.filter(
                    blood_request=blood_request,
                    status__in=DonorResponse.AWAITING_STATUSES,
                ).update(status=DonorResponse.STATUS_CANCELLED, updated_at=timezone.now())
        except DatabaseError as exc:
            raise DependencyError(f"Could not cancel request {blood_request.pk}: {exc}") from exc

        logger.info("Request %s cancelled; %d notifications withdrawn", blood_request.pk, withdrawn)
        return withdrawn
