# algorithms/priority.py
from dataclasses import dataclass, field
from typing import Optional

from algorithms.eligibility import EligibilityResult, days_since

EXACT_MATCH_SCORE = 100
COMPATIBLE_SCORE = 50
DISTANCE_BONUS_CAP_KM = 50

URGENCY_MULTIPLIERS = {
    'critical': 2.0,
    'urgent': 1.5,
    'normal': 1.0,
    'low': 0.8,
}

FIRST_TIME_DONOR_BONUS = 30
RESTED_DONOR_BONUS = 20
RESTED_AFTER_DAYS = 90


@dataclass
class MatchCandidate:
    """One donor considered for one request; lives for a single matching run"""
    donor: object
    distance_km: Optional[float] = None
    priority_score: float = 0.0
    eligibility: EligibilityResult = field(default_factory=EligibilityResult)
    travel_time: Optional[dict] = None

    @property
    def is_eligible(self):
        return self.eligibility.eligible

    @property
    def donor_id(self):
        return self.donor.pk


def calculate_priority_score(donor_blood_type, requested_blood_type, distance_km, urgency,
                             last_donation_date, now=None):
    """
    Score a donor for a request (higher is better)

    Blood type: exact match 100, compatible 50
    Distance:   + max(0, 50 - km), nothing when unknown
    Urgency:    the sum above times the urgency multiplier
    History:    + 30 never donated, + 20 rested for more than 90 days
    """
    score = EXACT_MATCH_SCORE if donor_blood_type == requested_blood_type else COMPATIBLE_SCORE

    if distance_km is not None:
        score += max(0, DISTANCE_BONUS_CAP_KM - distance_km)

    score *= URGENCY_MULTIPLIERS.get(urgency, 1.0)

    if last_donation_date is None:
        score += FIRST_TIME_DONOR_BONUS
    elif days_since(last_donation_date, now) > RESTED_AFTER_DAYS:
        score += RESTED_DONOR_BONUS

    return score


def score_candidate(candidate, blood_request, now=None):
    candidate.priority_score = calculate_priority_score(
        candidate.donor.blood_type,
        blood_request.blood_type,
        candidate.distance_km,
        blood_request.urgency,
        candidate.donor.last_donation_date,
        now=now,
    )
    return candidate


def _ranking_key(candidate):
    # Highest score first, then nearest (unknown distance last), then lowest donor id
    distance = candidate.distance_km
    return (
        -candidate.priority_score,
        distance is None,
        distance if distance is not None else 0.0,
        candidate.donor_id,
    )


def rank_candidates(candidates, blood_request=None, now=None):
    """
    Priority Algorithm: orders match candidates for a request.
    Scores are (re)computed when the request is given.

    Returns a new list, best candidate first
    """
    candidates = list(candidates) if candidates is not None else []
    if blood_request is not None:
        for candidate in candidates:
            score_candidate(candidate, blood_request, now=now)
    return sorted(candidates, key=_ranking_key)
