# api/serializers.py

from rest_framework import serializers

from algorithms.blood_compatibility import validate_blood_type as normalise_blood_type
from algorithms.exceptions import ValidationError
from algorithms.haversine import is_valid_coordinates
from donors.models import DonorProfile, DonorResponse
from donors.tracker import RESPONSE_STATUSES
from hospitals.models import BloodRequest, HospitalProfile


class DonorSerializer(serializers.ModelSerializer):
    # Add computed field for email from user
    email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = DonorProfile
        fields = [
            'id',
            'full_name',
            'phone',
            'blood_type',
            'address',
            'city',
            'latitude',
            'longitude',
            'availability_radius_km',
            'donation_count',
            'last_donation_date',
            'is_available',
            'email',
        ]


class HospitalSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = HospitalProfile
        fields = ['id', 'hospital_name', 'phone', 'address', 'city', 'latitude', 'longitude', 'email']


# Fields donors were matched and notified on
LOCKED_AFTER_DISPATCH = (
    'hospital', 'blood_type', 'units_needed', 'urgency',
    'latitude', 'longitude', 'search_radius_km',
)


class BloodRequestSerializer(serializers.ModelSerializer):
    hospital_name = serializers.CharField(source='hospital.hospital_name', read_only=True)
    # Free text so lower-case input can be normalised below
    blood_type = serializers.CharField(max_length=5)

    class Meta:
        model = BloodRequest
        fields = [
            'id',
            'hospital',
            'hospital_name',
            'blood_type',
            'units_needed',
            'urgency',
            'patient_name',
            'patient_age',
            'condition',
            'contact_phone',
            'latitude',
            'longitude',
            'search_radius_km',
            'status',
            'needed_by',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['status', 'created_at', 'updated_at']

    def validate_blood_type(self, value):
        try:
            return normalise_blood_type(value)
        except ValidationError as exc:
            raise serializers.ValidationError(str(exc))

    def validate(self, attrs):
        instance = self.instance
        if instance is not None and instance.status != BloodRequest.STATUS_PENDING:
            changed = sorted(
                name for name in LOCKED_AFTER_DISPATCH
                if name in attrs and attrs[name] != getattr(instance, name)
            )
            if changed:
                raise serializers.ValidationError(
                    f"Request is {instance.status}; {', '.join(changed)} can no longer be changed"
                )

        # A partial update may send one coordinate and keep the other
        latitude = attrs.get('latitude', getattr(instance, 'latitude', None))
        longitude = attrs.get('longitude', getattr(instance, 'longitude', None))
        if (latitude is None) != (longitude is None):
            raise serializers.ValidationError("Latitude and longitude must be given together")
        if latitude is not None and not is_valid_coordinates(latitude, longitude):
            raise serializers.ValidationError(f"Invalid coordinates: {latitude}, {longitude}")
        return attrs


class MatchCandidateSerializer(serializers.Serializer):
    """Read-only view of a ranked MatchCandidate"""
    donor = DonorSerializer(read_only=True)
    distance_km = serializers.SerializerMethodField()
    priority_score = serializers.FloatField(read_only=True)
    eligible = serializers.BooleanField(source='is_eligible', read_only=True)
    reasons = serializers.ListField(source='eligibility.reasons', child=serializers.CharField(), read_only=True)
    travel_time = serializers.DictField(read_only=True, allow_null=True)

    def get_distance_km(self, obj):
        if obj.distance_km is None:
            return None
        return round(obj.distance_km, 2)


class DonorResponseSerializer(serializers.ModelSerializer):
    donor_name = serializers.CharField(source='donor.full_name', read_only=True)
    response_time_minutes = serializers.FloatField(read_only=True, allow_null=True)

    class Meta:
        model = DonorResponse
        fields = [
            'id',
            'donor',
            'donor_name',
            'blood_request',
            'status',
            'message',
            'distance_km',
            'priority_score',
            'created_at',
            'updated_at',
            'responded_at',
            'response_time_minutes',
        ]


class NotifyDonorsSerializer(serializers.Serializer):
    donor_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
    limit = serializers.IntegerField(min_value=1, required=False)

    def validate_donor_ids(self, value):
        if not value:
            raise serializers.ValidationError("Select at least one donor")
        return list(dict.fromkeys(value))


class RespondSerializer(serializers.Serializer):
    donor_id = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=RESPONSE_STATUSES)
    message = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_donor_id(self, value):
        if not DonorProfile.objects.filter(pk=value).exists():
            raise serializers.ValidationError(f"Unknown donor {value}")
        return value
