import pytest
from django.db import DatabaseError

from algorithms.exceptions import DependencyError, ValidationError
from hospitals.matching import DonorMatcher, sort_candidates
from tests.conftest import HOSPITAL_LAT, HOSPITAL_LNG, km_north

pytestmark = pytest.mark.django_db


@pytest.fixture
def matcher():
    return DonorMatcher(default_radius_km=50, max_results=20)


def donor_ids(candidates):
    return [candidate.donor_id for candidate in candidates]


def test_only_compatible_donors_are_considered(matcher, make_donor, make_request):
    o_neg = make_donor('O-')
    a_pos = make_donor('A+')
    make_donor('B+')
    make_donor('AB+')

    candidates = matcher.find_matching_donors(make_request('A+'))

    assert set(donor_ids(candidates)) == {o_neg.pk, a_pos.pk}


def test_inactive_users_are_skipped(matcher, make_donor, make_request):
    donor = make_donor('O+')
    donor.user.is_active = False
    donor.user.save()

    assert matcher.find_matching_donors(make_request('O+')) == []


def test_bounding_box_excludes_distant_donors(matcher, make_donor, make_request):
    near = make_donor('O+', latitude=km_north(5))
    make_donor('O+', latitude=km_north(200))

    candidates = matcher.find_matching_donors(make_request('O+'))

    assert donor_ids(candidates) == [near.pk]
    assert candidates[0].distance_km == pytest.approx(5, abs=0.01)
    assert candidates[0].travel_time == {'minutes': 10, 'formatted': '10 min'}


def test_ranking_prefers_exact_type(matcher, make_donor, make_request):
    universal = make_donor('O-', latitude=km_north(2))
    exact = make_donor('AB+', latitude=km_north(20), availability_radius_km=30)

    candidates = matcher.find_matching_donors(make_request('AB+'))

    assert donor_ids(candidates) == [exact.pk, universal.pk]
    assert candidates[0].priority_score > candidates[1].priority_score


def test_ineligible_donors_carry_reasons(matcher, make_donor, make_request):
    make_donor('O+', is_available=False)

    candidates = matcher.find_matching_donors(make_request('O+'))
    assert len(candidates) == 1
    assert candidates[0].eligibility.reasons == ['donor not available']

    assert matcher.find_matching_donors(make_request('O+'), include_ineligible=False) == []


def test_request_without_location_searches_everywhere(matcher, make_donor, make_request, hospital):
    hospital.latitude = hospital.longitude = None
    hospital.save()
    far = make_donor('O+', latitude=km_north(500))
    unlocated = make_donor('O+', latitude=None, longitude=None)

    candidates = matcher.find_matching_donors(make_request('O+'))

    assert set(donor_ids(candidates)) == {far.pk, unlocated.pk}
    assert all(candidate.distance_km is None for candidate in candidates)
    assert all(candidate.is_eligible for candidate in candidates)


def test_unknown_blood_type_is_rejected(matcher, blood_request):
    blood_request.blood_type = 'X+'
    with pytest.raises(ValidationError):
        matcher.find_matching_donors(blood_request)


def test_store_failure_becomes_dependency_error(matcher, blood_request, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError('connection lost')

    monkeypatch.setattr('django.db.models.query.QuerySet._fetch_all', broken)
    with pytest.raises(DependencyError):
        matcher.find_matching_donors(blood_request)


def test_search_radius_order(matcher, make_request):
    assert matcher.search_radius(make_request()) == 50
    assert matcher.search_radius(make_request(search_radius_km=10)) == 10
    assert matcher.search_radius(make_request(search_radius_km=10), 3) == 3


def test_find_nearby_donors(matcher, make_donor, make_request):
    near = make_donor('O+', latitude=km_north(3))
    nearer = make_donor('O-', latitude=km_north(1))
    make_donor('O+', latitude=km_north(4), is_available=False)

    result = matcher.find_nearby_donors(make_request('O+'), max_distance=10)

    assert donor_ids(result['donors']) == [nearer.pk, near.pk]
    assert result['eligible_count'] == 2
    assert result['total_count'] == 3
    assert result['search_radius'] == 10
    assert result['search_center'] == {'lat': HOSPITAL_LAT, 'lng': HOSPITAL_LNG}
    assert result['compatibility']['compatible'] == ['O+', 'O-']

    with_ineligible = matcher.find_nearby_donors(make_request('O+'), max_distance=10, include_ineligible=True)
    assert len(with_ineligible['donors']) == 3


def test_find_nearby_donors_needs_location(matcher, make_request, hospital):
    hospital.latitude = hospital.longitude = None
    hospital.save()
    with pytest.raises(ValidationError):
        matcher.find_nearby_donors(make_request())


def test_find_nearby_donors_rejects_unknown_sort(matcher, blood_request):
    with pytest.raises(ValidationError):
        matcher.find_nearby_donors(blood_request, sort_by='age')


def test_sort_by_donation_history(matcher, make_donor, make_request, days_ago):
    veteran = make_donor('O+', donation_count=12, last_donation_date=days_ago(200))
    recent = make_donor('O+', donation_count=3, last_donation_date=days_ago(60))
    newcomer = make_donor('O+')

    candidates = matcher.find_matching_donors(make_request('O+'))

    assert donor_ids(sort_candidates(candidates, 'total_donations')) == [veteran.pk, recent.pk, newcomer.pk]
    assert donor_ids(sort_candidates(candidates, 'last_donation')) == [recent.pk, veteran.pk, newcomer.pk]


def test_donor_statistics(matcher, make_donor, days_ago):
    make_donor('O+', donation_count=4, last_donation_date=days_ago(10))
    make_donor('A-', donation_count=2, is_available=False)
    make_donor('B+', latitude=km_north(300))

    stats = matcher.donor_statistics(HOSPITAL_LAT, HOSPITAL_LNG, radius_km=20)

    assert stats['total_donors'] == 2
    assert stats['available_donors'] == 1
    assert stats['blood_type_distribution']['O+'] == 1
    assert stats['blood_type_distribution']['A-'] == 1
    assert stats['blood_type_distribution']['B+'] == 0
    assert stats['average_donations'] == 3
    assert stats['recently_active'] == 1


def test_donor_statistics_rejects_bad_centre(matcher):
    with pytest.raises(ValidationError):
        matcher.donor_statistics(120, 0)


def test_donors_across_the_antimeridian_are_found(matcher, make_donor, make_request):
    east = make_donor('O+', latitude=-17.0, longitude=-179.99)
    make_donor('O+', latitude=-17.0, longitude=170.0)

    candidates = matcher.find_matching_donors(make_request('O+', latitude=-17.0, longitude=179.99))

    assert donor_ids(candidates) == [east.pk]
    assert candidates[0].distance_km == pytest.approx(2.13, abs=0.05)


def test_donor_statistics_across_the_antimeridian(matcher, make_donor):
    make_donor('O+', latitude=-17.0, longitude=-179.99)
    make_donor('A+', latitude=-17.0, longitude=179.95)

    stats = matcher.donor_statistics(-17.0, 179.99, radius_km=20)

    assert stats['total_donors'] == 2
