# realtime/serializers.py
"""Event payloads pushed to subscribed sessions"""
from rest_framework import serializers

from donors.models import DonorResponse
from hospitals.models import BloodRequest


class BloodRequestEventSerializer(serializers.ModelSerializer):
    hospital_id = serializers.IntegerField(source='hospital.id', read_only=True)
    hospital_name = serializers.CharField(source='hospital.hospital_name', read_only=True)
    hospital_address = serializers.CharField(source='hospital.address', read_only=True)
    hospital_city = serializers.CharField(source='hospital.city', read_only=True)

    class Meta:
        model = BloodRequest
        fields = [
            'id',
            'hospital_id',
            'hospital_name',
            'hospital_address',
            'hospital_city',
            'blood_type',
            'units_needed',
            'urgency',
            'status',
            'patient_age',
            'condition',
            'contact_phone',
            'latitude',
            'longitude',
            'created_at',
            'needed_by',
        ]


class DonorResponseEventSerializer(serializers.ModelSerializer):
    request_id = serializers.IntegerField(source='blood_request.id', read_only=True)
    hospital_id = serializers.IntegerField(source='blood_request.hospital_id', read_only=True)
    donor_id = serializers.IntegerField(source='donor.id', read_only=True)
    donor_name = serializers.CharField(source='donor.full_name', read_only=True)
    donor_blood_type = serializers.CharField(source='donor.blood_type', read_only=True)
    donor_phone = serializers.CharField(source='donor.phone', read_only=True)
    donor_city = serializers.CharField(source='donor.city', read_only=True)
    blood_request = serializers.SerializerMethodField()

    class Meta:
        model = DonorResponse
        fields = [
            'id',
            'request_id',
            'hospital_id',
            'donor_id',
            'donor_name',
            'donor_blood_type',
            'donor_phone',
            'donor_city',
            'status',
            'message',
            'distance_km',
            'created_at',
            'updated_at',
            'blood_request',
        ]

    def get_blood_request(self, obj):
        request = obj.blood_request
        return {
            'blood_type': request.blood_type,
            'units_needed': request.units_needed,
            'urgency': request.urgency,
            'patient_age': request.patient_age,
            'condition': request.condition,
        }
