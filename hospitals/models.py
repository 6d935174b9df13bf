# hospitals/models.py
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from algorithms.blood_compatibility import BLOOD_TYPES
from hospitals.signals import blood_request_status_changed


class HospitalProfile(models.Model):
    """The requesting facility; owns its blood requests"""
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    hospital_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=15, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)

    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.hospital_name

    class Meta:
        verbose_name = 'Hospital Profile'
        verbose_name_plural = 'Hospital Profiles'


class BloodRequest(models.Model):
    URGENCY_CHOICES = [
        ('critical', 'Critical - Life Threatening'),
        ('urgent', 'Urgent - Within 24 Hours'),
        ('normal', 'Normal - Within 48 Hours'),
        ('low', 'Low - Scheduled'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_FULFILLED = 'fulfilled'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active - Donors Notified'),
        (STATUS_FULFILLED, 'Fulfilled'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Forward-only status graph
    TRANSITIONS = {
        STATUS_PENDING: {STATUS_ACTIVE, STATUS_FULFILLED, STATUS_CANCELLED},
        STATUS_ACTIVE: {STATUS_FULFILLED, STATUS_CANCELLED},
        STATUS_FULFILLED: set(),
        STATUS_CANCELLED: set(),
    }
    OPEN_STATUSES = (STATUS_PENDING, STATUS_ACTIVE)
    EMERGENCY_URGENCIES = ('critical', 'urgent')

    BLOOD_TYPE_CHOICES = [(blood_type, blood_type) for blood_type in BLOOD_TYPES]

    hospital = models.ForeignKey(HospitalProfile, on_delete=models.CASCADE, related_name='blood_requests')
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    units_needed = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    urgency = models.CharField(max_length=10, choices=URGENCY_CHOICES, default='normal')

    patient_name = models.CharField(max_length=200, blank=True)
    patient_age = models.PositiveIntegerField(null=True, blank=True)
    condition = models.TextField(blank=True, help_text="Patient's medical condition")
    contact_phone = models.CharField(max_length=15, blank=True)

    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    search_radius_km = models.FloatField(
        null=True, blank=True,
        help_text="Overrides each donor's own availability radius"
    )

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    needed_by = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.hospital.hospital_name} - {self.blood_type} ({self.urgency})"

    def save(self, *args, **kwargs):
        # Requests without their own location use the hospital's
        if self.latitude is None and self.longitude is None and self.hospital_id:
            self.latitude = self.hospital.latitude
            self.longitude = self.hospital.longitude
        super().save(*args, **kwargs)

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES

    @property
    def is_emergency(self):
        return self.urgency in self.EMERGENCY_URGENCIES

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status):
        """
        Conditional status update in the database.

        Only rows whose current status may move to new_status are touched,
        so two callers racing for the same edge cannot both win.

        Returns:
            True if this call moved the row, False otherwise
        """
        sources = [source for source, targets in self.TRANSITIONS.items() if new_status in targets]
        updated = BloodRequest.objects.filter(pk=self.pk, status__in=sources).update(
            status=new_status,
            updated_at=timezone.now(),
        )
        if not updated:
            self.refresh_from_db(fields=['status', 'updated_at'])
            return False

        previous = self.status
        self.refresh_from_db(fields=['status', 'updated_at'])

        blood_request_status_changed.send(
            sender=BloodRequest, instance=self, previous=previous, status=new_status
        )
        return True

    @property
    def hours_waiting(self):
        delta = timezone.now() - self.created_at
        return delta.total_seconds() / 3600

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Blood Request'
        verbose_name_plural = 'Blood Requests'
        constraints = [
            models.CheckConstraint(condition=models.Q(units_needed__gte=1), name='blood_request_units_positive'),
        ]
