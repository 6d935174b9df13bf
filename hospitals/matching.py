# hospitals/matching.py
"""
Donor search for blood requests.

Pipeline: compatible blood types -> bounding-box query -> exact distance
-> eligibility -> priority ranking.
"""
import logging
from datetime import timedelta

from django.db import DatabaseError
from django.db.models import Q, Sum
from django.utils import timezone

from algorithms.blood_compatibility import BLOOD_TYPES, compatibility_summary, get_compatible_donors
from algorithms.eligibility import evaluate_eligibility
from algorithms.exceptions import DependencyError, ValidationError
from algorithms.haversine import bounding_box, distances_from, estimate_travel_time, validate_coordinates
from algorithms.priority import MatchCandidate, rank_candidates
from donors.models import DonorProfile

DEFAULT_SEARCH_RADIUS_KM = 50
DEFAULT_MAX_RESULTS = 20
SORT_KEYS = ('priority', 'distance', 'last_donation', 'total_donations')

logger = logging.getLogger(__name__)


def box_filter(box):
    """Q object selecting donors inside a bounding box, wrapped or not"""
    in_latitude = Q(latitude__gte=box['min_lat'], latitude__lte=box['max_lat'])
    if box['wraps']:
        return in_latitude & (Q(longitude__gte=box['min_lng']) | Q(longitude__lte=box['max_lng']))
    return in_latitude & Q(longitude__gte=box['min_lng'], longitude__lte=box['max_lng'])


class DonorMatcher:
    """
    Finds and ranks donors for a blood request.

    Args:
        default_radius_km: Bounding-box radius when neither the caller nor
            the request gives one
        max_results: Default cap for find_nearby_donors()
    """

    def __init__(self, default_radius_km=DEFAULT_SEARCH_RADIUS_KM, max_results=DEFAULT_MAX_RESULTS):
        self.default_radius_km = default_radius_km
        self.max_results = max_results

    def search_radius(self, blood_request, search_radius_km=None):
        if search_radius_km is not None:
            return search_radius_km
        if blood_request.search_radius_km is not None:
            return blood_request.search_radius_km
        return self.default_radius_km

    def candidate_queryset(self, blood_type, latitude=None, longitude=None, radius_km=None):
        """
        Compatible donors, limited to the bounding box when a centre is given.

        Raises:
            ValidationError: unknown blood type or invalid centre
        """
        compatible_types = get_compatible_donors(blood_type)
        queryset = DonorProfile.objects.filter(
            blood_type__in=compatible_types,
            user__is_active=True,
        )

        if latitude is None and longitude is None:
            return queryset

        latitude, longitude = validate_coordinates(latitude, longitude)
        box = bounding_box(latitude, longitude, radius_km)
        return queryset.filter(box_filter(box))

    def find_matching_donors(self, blood_request, search_radius_km=None, include_ineligible=True, now=None):
        """
        Rank every compatible donor in range for a request.

        Args:
            blood_request (BloodRequest): The request being matched
            search_radius_km (float): Overrides request and donor radius
            include_ineligible (bool): Keep ineligible donors in the list,
                with their reasons, instead of dropping them
            now (datetime): Reference time for cooldowns

        Returns:
            List of MatchCandidate, best first

        Raises:
            ValidationError: bad blood type or coordinates, nothing searched
            DependencyError: the donor query failed
        """
        now = now or timezone.now()
        radius = self.search_radius(blood_request, search_radius_km)

        if blood_request.has_location:
            queryset = self.candidate_queryset(
                blood_request.blood_type, blood_request.latitude, blood_request.longitude, radius
            )
        else:
            queryset = self.candidate_queryset(blood_request.blood_type)

        try:
            donors = list(queryset.select_related('user'))
        except DatabaseError as exc:
            raise DependencyError(f"Donor lookup failed for request {blood_request.pk}: {exc}") from exc

        logger.info(
            "Request %s (%s): %d compatible donors within %.1f km",
            blood_request.pk, blood_request.blood_type, len(donors), radius
        )

        distances = self._distances(blood_request, donors)
        candidates = []
        for donor in donors:
            distance = distances.get(donor.pk)
            eligibility = evaluate_eligibility(
                donor, blood_request, search_radius_km=search_radius_km, now=now, distance_km=distance
            )
            if not eligibility.eligible and not include_ineligible:
                continue
            candidates.append(MatchCandidate(
                donor=donor,
                distance_km=distance,
                eligibility=eligibility,
                travel_time=estimate_travel_time(distance) if distance is not None else None,
            ))

        ranked = rank_candidates(candidates, blood_request, now=now)
        logger.info(
            "Request %s: %d candidates ranked (%d eligible)",
            blood_request.pk, len(ranked), sum(1 for c in ranked if c.is_eligible)
        )
        return ranked

    def _distances(self, blood_request, donors):
        if not blood_request.has_location:
            return {}
        located = [donor for donor in donors if donor.has_location]
        values = distances_from(
            blood_request.latitude,
            blood_request.longitude,
            [(donor.latitude, donor.longitude) for donor in located],
        )
        return {donor.pk: float(km) for donor, km in zip(located, values)}

    def find_nearby_donors(self, blood_request, max_distance=None, max_results=None,
                           include_ineligible=False, sort_by='distance', now=None):
        """
        Nearby-donor search with a result summary, for dashboards and the API.

        Requires the request to have a location.

        Returns:
            dict with donors (MatchCandidate list), eligible_count,
            total_count, search_radius and search_center
        """
        if not blood_request.has_location:
            raise ValidationError(f"Request {blood_request.pk} has no location to search around")
        if sort_by not in SORT_KEYS:
            raise ValidationError(f"Unknown sort key: {sort_by!r}")

        max_distance = max_distance if max_distance is not None else self.default_radius_km
        max_results = max_results if max_results is not None else self.max_results

        candidates = self.find_matching_donors(
            blood_request, search_radius_km=max_distance, include_ineligible=True, now=now
        )
        # The box is a square; drop the corners
        candidates = [c for c in candidates if c.distance_km is not None and c.distance_km <= max_distance]

        eligible = [c for c in candidates if c.is_eligible]
        ineligible = [c for c in candidates if not c.is_eligible]
        eligible = sort_candidates(eligible, sort_by)

        results = eligible[:max_results]
        if include_ineligible:
            # A few ineligible donors for reference
            results.extend(ineligible[:5])

        return {
            'donors': results,
            'eligible_count': len(eligible),
            'total_count': len(candidates),
            'search_radius': max_distance,
            'search_center': {'lat': blood_request.latitude, 'lng': blood_request.longitude},
            'compatibility': compatibility_summary(blood_request.blood_type),
        }

    def donor_statistics(self, latitude, longitude, radius_km=DEFAULT_SEARCH_RADIUS_KM):
        """Counts of donors around a point, by availability and blood type"""
        latitude, longitude = validate_coordinates(latitude, longitude)
        box = bounding_box(latitude, longitude, radius_km)

        queryset = DonorProfile.objects.filter(box_filter(box))
        try:
            total = queryset.count()
            available = queryset.filter(is_available=True).count()
            distribution = {blood_type: 0 for blood_type in BLOOD_TYPES}
            for row in queryset.values('blood_type'):
                distribution[row['blood_type']] += 1
            total_donations = queryset.aggregate(total=Sum('donation_count'))['total'] or 0
            recently_active = queryset.filter(
                last_donation_date__gte=timezone.localdate() - timedelta(days=30)
            ).count()
        except DatabaseError as exc:
            raise DependencyError(f"Donor statistics query failed: {exc}") from exc

        return {
            'total_donors': total,
            'available_donors': available,
            'blood_type_distribution': distribution,
            'average_donations': round(total_donations / total) if total else 0,
            'recently_active': recently_active,
        }


def sort_candidates(candidates, sort_by='priority'):
    if sort_by == 'distance':
        return sorted(candidates, key=lambda c: (c.distance_km is None, c.distance_km or 0.0, c.donor_id))
    if sort_by == 'last_donation':
        # Most recent donors first, never-donated last
        return sorted(
            candidates,
            key=lambda c: (c.donor.last_donation_date is None,
                           -(c.donor.last_donation_date.toordinal() if c.donor.last_donation_date else 0),
                           c.donor_id)
        )
    if sort_by == 'total_donations':
        return sorted(candidates, key=lambda c: (-c.donor.donation_count, c.donor_id))
    return rank_candidates(candidates)
