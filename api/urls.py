# api/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'blood-requests', views.BloodRequestViewSet, basename='blood-request')

app_name = 'api'

urlpatterns = [
    path('', include(router.urls)),
    path('stats/', views.dashboard_stats, name='dashboard-stats'),
]

# GET  /api/blood-requests/{id}/matches/         - Ranked donor candidates
# POST /api/blood-requests/{id}/notify_donors/   - Notify selected (or top) donors
# POST /api/blood-requests/{id}/respond/         - Record a donor answer
# POST /api/blood-requests/{id}/cancel/          - Cancel and withdraw notifications
# GET  /api/blood-requests/{id}/response_stats/  - Answer summary
# GET  /api/stats/?hospital=<id>                 - Last 24 hours for a hospital
