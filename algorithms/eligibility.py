import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from django.utils import timezone

from algorithms.haversine import format_distance, haversine_distance

# Constants
DONATION_COOLDOWN_DAYS = 56
EMERGENCY_COOLDOWN_DAYS = 90

# Logger
logger = logging.getLogger(__name__)


@dataclass
class EligibilityResult:
    eligible: bool = True
    reasons: List[str] = field(default_factory=list)
    distance_km: Optional[float] = None

    def fail(self, reason):
        self.eligible = False
        self.reasons.append(reason)


def days_since(value, now=None) -> Optional[float]:
    """
    Days elapsed since a date or datetime, None when value is empty.
    Dates count whole days, datetimes count fractional days.
    """
    if value is None:
        return None
    now = now or timezone.now()
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            value = timezone.make_aware(value)
        return (now - value).total_seconds() / 86400
    return (timezone.localdate(now) - value).days


def resolve_search_radius(donor, blood_request, search_radius_km=None):
    """Explicit radius, then the request's override, then the donor's own radius"""
    if search_radius_km is not None:
        return search_radius_km
    override = getattr(blood_request, 'search_radius_km', None)
    if override is not None:
        return override
    return donor.availability_radius_km


def evaluate_eligibility(donor, blood_request, search_radius_km=None, now=None,
                         distance_km=None) -> EligibilityResult:
    """
    Check a donor against a blood request and collect every failing rule.

    Rules:
    - Donor is available
    - Last donation at least 56 days ago
    - Last emergency response at least 90 days ago
    - No medical conditions on file
    - Within the search radius (when both locations are known)

    Blood type is not checked here: candidates come from the
    compatible-type query.

    Args:
        donor (DonorProfile): Donor object
        blood_request (BloodRequest): Request being matched
        search_radius_km (float): Overrides request and donor radius
        now (datetime): Reference time, defaults to timezone.now()
        distance_km (float): Precomputed distance, skips the haversine call

    Returns:
        EligibilityResult with eligible flag, reasons and distance
    """
    now = now or timezone.now()
    result = EligibilityResult()

    if not donor.is_available:
        result.fail("donor not available")

    # Donation cooldown
    since_donation = days_since(donor.last_donation_date, now)
    if since_donation is not None and since_donation < DONATION_COOLDOWN_DAYS:
        result.fail(
            f"last donation {round(since_donation)} days ago "
            f"(need {DONATION_COOLDOWN_DAYS} days)"
        )

    # Emergency cooldown, independent of the donation cooldown
    since_emergency = days_since(donor.last_emergency_response_date, now)
    if since_emergency is not None and since_emergency < EMERGENCY_COOLDOWN_DAYS:
        result.fail(
            f"emergency cooldown: {round(since_emergency)} days ago "
            f"(need {EMERGENCY_COOLDOWN_DAYS} days)"
        )

    if donor.medical_conditions and donor.medical_conditions.strip():
        result.fail("medical conditions prevent donation")

    # Distance check
    if donor.has_location and blood_request.has_location:
        distance = distance_km
        if distance is None:
            distance = haversine_distance(
                blood_request.latitude,
                blood_request.longitude,
                donor.latitude,
                donor.longitude,
            )
        result.distance_km = distance
        radius = resolve_search_radius(donor, blood_request, search_radius_km)
        if distance > radius:
            result.fail(f"too far ({format_distance(distance)})")

    if not result.eligible:
        logger.debug("Donor %s ineligible for request %s: %s", donor.pk, blood_request.pk, result.reasons)

    return result


def next_eligible_date(donor) -> Optional[date]:
    """Date both cooldowns have run out, None if the donor is clear now"""
    candidates = []
    if donor.last_donation_date:
        candidates.append(donor.last_donation_date + timedelta(days=DONATION_COOLDOWN_DAYS))
    if donor.last_emergency_response_date:
        candidates.append(
            timezone.localdate(donor.last_emergency_response_date) + timedelta(days=EMERGENCY_COOLDOWN_DAYS)
        )
    if not candidates:
        return None

    latest = max(candidates)
    if latest <= timezone.localdate():
        return None
    return latest
