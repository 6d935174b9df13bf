from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from algorithms.blood_compatibility import BLOOD_TYPES


# ---------------------------
# Donor Profile
# ---------------------------
class DonorProfile(models.Model):
    BLOOD_TYPE_CHOICES = [(blood_type, blood_type) for blood_type in BLOOD_TYPES]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='donor_profile'
    )

    full_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=15, blank=True, db_index=True)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)

    # Geolocation (optional)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    availability_radius_km = models.FloatField(default=25, validators=[MinValueValidator(0)])

    # Donation tracking
    donation_count = models.PositiveIntegerField(default=0)
    last_donation_date = models.DateField(null=True, blank=True)
    last_emergency_response_date = models.DateTimeField(null=True, blank=True)
    is_available = models.BooleanField(default=True)

    # Anything written here disqualifies the donor
    medical_conditions = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None

    def __str__(self):
        return f"{self.full_name} ({self.blood_type})"

    class Meta:
        verbose_name = "Donor Profile"
        verbose_name_plural = "Donor Profiles"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['blood_type', 'latitude', 'longitude'], name='donor_blood_type_geo_idx'),
        ]


class DonorResponse(models.Model):
    """
    A donor's notification for one blood request, and their answer to it.

    Created as 'notified' at dispatch time and updated in place when the
    donor responds. One row per (donor, blood_request).
    """
    STATUS_NOTIFIED = 'notified'
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_DECLINED = 'declined'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_NOTIFIED, 'Notified'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_CANCELLED, 'Cancelled - Fulfilled by another donor'),
    ]

    # Both mean "waiting for the donor"
    AWAITING_STATUSES = (STATUS_NOTIFIED, STATUS_PENDING)
    ANSWER_STATUSES = (STATUS_ACCEPTED, STATUS_DECLINED)

    donor = models.ForeignKey(
        DonorProfile,
        on_delete=models.CASCADE,
        related_name='responses'
    )
    blood_request = models.ForeignKey(
        'hospitals.BloodRequest',
        on_delete=models.PROTECT,
        related_name='donor_responses'
    )

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_NOTIFIED)
    message = models.TextField(blank=True)
    distance_km = models.FloatField(null=True, blank=True)
    priority_score = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    @property
    def is_awaiting(self):
        return self.status in self.AWAITING_STATUSES

    @property
    def response_time_minutes(self):
        if self.responded_at and self.created_at:
            delta = self.responded_at - self.created_at
            return round(delta.total_seconds() / 60, 1)
        return None

    def __str__(self):
        return f"{self.donor.full_name} → Request #{self.blood_request_id} ({self.status})"

    class Meta:
        ordering = ['-updated_at']
        constraints = [
            models.UniqueConstraint(fields=['donor', 'blood_request'], name='unique_donor_response'),
        ]
        indexes = [
            models.Index(fields=['blood_request', 'status'], name='donor_response_status_idx'),
        ]


class DonationHistory(models.Model):
    STATUS_CHOICES = [
        ('completed', 'Completed'),
    ]

    ML_PER_UNIT = 450

    donor = models.ForeignKey(
        DonorProfile,
        on_delete=models.CASCADE,
        related_name='donation_history'
    )
    hospital = models.ForeignKey(
        'hospitals.HospitalProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True
    )
    blood_request = models.ForeignKey(
        'hospitals.BloodRequest',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='donations'
    )

    date_donated = models.DateField()
    blood_type = models.CharField(max_length=3, blank=True)
    units_donated = models.PositiveIntegerField(default=1)
    amount_ml = models.PositiveIntegerField(default=ML_PER_UNIT)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='completed')
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.donor.full_name} | {self.date_donated} | {self.amount_ml}ml"

    class Meta:
        ordering = ['-date_donated']
        verbose_name = "Donation History"
        verbose_name_plural = "Donation Histories"


class DonorHospitalConnection(models.Model):
    """Links an accepting donor with the hospital that asked"""
    donor = models.ForeignKey(
        DonorProfile,
        on_delete=models.CASCADE,
        related_name='hospital_connections'
    )
    hospital = models.ForeignKey(
        'hospitals.HospitalProfile',
        on_delete=models.CASCADE,
        related_name='donor_connections'
    )
    blood_request = models.ForeignKey(
        'hospitals.BloodRequest',
        on_delete=models.CASCADE,
        related_name='connections'
    )
    status = models.CharField(max_length=10, default='connected')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.donor.full_name} ↔ {self.hospital.hospital_name}"

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['donor', 'blood_request'], name='unique_donor_connection'),
        ]
