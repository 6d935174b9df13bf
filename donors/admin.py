from django.contrib import admin

from algorithms.eligibility import next_eligible_date
from .models import DonationHistory, DonorHospitalConnection, DonorProfile, DonorResponse


@admin.register(DonorProfile)
class DonorProfileAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'blood_type', 'city', 'donation_count', 'is_available', 'eligible_again']
    list_filter = ['blood_type', 'is_available']
    search_fields = ['full_name', 'user__username', 'phone']
    readonly_fields = ['donation_count', 'last_donation_date', 'last_emergency_response_date',
                       'created_at', 'updated_at']

    @admin.display(description='Eligible again')
    def eligible_again(self, obj):
        return next_eligible_date(obj) or 'Now'


@admin.register(DonorResponse)
class DonorResponseAdmin(admin.ModelAdmin):
    list_display = ['donor', 'blood_request', 'status', 'distance_km', 'priority_score', 'responded_at']
    list_filter = ['status']
    search_fields = ['donor__full_name']


@admin.register(DonationHistory)
class DonationHistoryAdmin(admin.ModelAdmin):
    list_display = ['donor', 'hospital', 'date_donated', 'units_donated', 'amount_ml']
    list_filter = ['date_donated']


admin.site.register(DonorHospitalConnection)
