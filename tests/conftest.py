import itertools
from datetime import timedelta

import pytest
from django.utils import timezone

from bloodlink.celery import app as celery_app
from donors.models import DonorProfile
from hospitals.models import BloodRequest, HospitalProfile

# Kathmandu, roughly Bir Hospital
HOSPITAL_LAT = 27.7050
HOSPITAL_LNG = 85.3130

_sequence = itertools.count(1)


@pytest.fixture(autouse=True)
def eager_celery():
    # The app loads settings with namespace='CELERY', so the prefixed keys win
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
    celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = True
    yield
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = False


@pytest.fixture
def make_user(django_user_model):
    def _make_user(**kwargs):
        n = next(_sequence)
        kwargs.setdefault('username', f'user{n}')
        kwargs.setdefault('email', f'user{n}@example.com')
        return django_user_model.objects.create_user(password='pass1234', **kwargs)
    return _make_user


@pytest.fixture
def hospital(make_user):
    return HospitalProfile.objects.create(
        user=make_user(email='bir@example.com'),
        hospital_name='Bir Hospital',
        phone='014221119',
        address='Mahaboudha',
        city='Kathmandu',
        latitude=HOSPITAL_LAT,
        longitude=HOSPITAL_LNG,
    )


@pytest.fixture
def make_donor(make_user):
    def _make_donor(blood_type='O+', latitude=HOSPITAL_LAT, longitude=HOSPITAL_LNG, **kwargs):
        kwargs.setdefault('full_name', f'Donor {next(_sequence)}')
        user = kwargs.pop('user', None) or make_user()
        return DonorProfile.objects.create(
            user=user,
            blood_type=blood_type,
            latitude=latitude,
            longitude=longitude,
            **kwargs
        )
    return _make_donor


@pytest.fixture
def make_request(hospital):
    def _make_request(blood_type='O+', urgency='critical', **kwargs):
        kwargs.setdefault('hospital', hospital)
        kwargs.setdefault('units_needed', 2)
        return BloodRequest.objects.create(blood_type=blood_type, urgency=urgency, **kwargs)
    return _make_request


@pytest.fixture
def blood_request(make_request):
    return make_request()


def km_north(km):
    """Latitude offset for a point km north of the hospital"""
    return HOSPITAL_LAT + km / 111.195


@pytest.fixture
def days_ago():
    def _days_ago(days):
        return timezone.localdate() - timedelta(days=days)
    return _days_ago
