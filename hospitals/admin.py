# hospitals/admin.py
from django.apps import apps
from django.contrib import admin, messages

from algorithms.exceptions import MatchingError
from .models import BloodRequest, HospitalProfile


@admin.register(HospitalProfile)
class HospitalProfileAdmin(admin.ModelAdmin):
    list_display = ['hospital_name', 'city', 'phone', 'latitude', 'longitude']
    search_fields = ['hospital_name', 'city', 'user__username']


@admin.register(BloodRequest)
class BloodRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'hospital_name', 'blood_type', 'units_needed', 'urgency', 'status', 'response_count']
    list_filter = ['status', 'urgency', 'blood_type', 'created_at']
    search_fields = ['patient_name', 'hospital__hospital_name', 'condition']
    readonly_fields = ['status', 'created_at', 'updated_at']
    actions = ['start_matching']

    @admin.display(description='Hospital')
    def hospital_name(self, obj):
        return obj.hospital.hospital_name

    @admin.display(description='Responses')
    def response_count(self, obj):
        return obj.donor_responses.count()

    @admin.action(description='Match and notify donors')
    def start_matching(self, request, queryset):
        engine = apps.get_app_config('api').engine
        for blood_request in queryset.filter(status__in=BloodRequest.OPEN_STATUSES):
            try:
                summary = engine.start_emergency_workflow(blood_request)
            except MatchingError as exc:
                self.message_user(request, f"Request #{blood_request.pk}: {exc}", messages.WARNING)
                continue
            self.message_user(
                request,
                f"Request #{blood_request.pk}: notified {summary['notifications_sent']} donors",
                messages.SUCCESS,
            )
