# api/views.py
import logging

from django.apps import apps
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from algorithms.exceptions import (
    AggregateFailure,
    ConflictError,
    DependencyError,
    MatchingError,
    NoCandidatesError,
    ValidationError,
)
from bloodlink.engine import EMERGENCY_NOTIFY_LIMIT
from donors.models import DonorProfile
from donors.tasks import run_emergency_workflow
from hospitals.models import BloodRequest, HospitalProfile
from hospitals import utils as hospital_utils

from .serializers import (
    BloodRequestSerializer,
    DonorResponseSerializer,
    MatchCandidateSerializer,
    NotifyDonorsSerializer,
    RespondSerializer,
)

# Most specific first
ERROR_STATUS = (
    (NoCandidatesError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AggregateFailure, status.HTTP_502_BAD_GATEWAY),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

logger = logging.getLogger(__name__)


def get_engine():
    return apps.get_app_config('api').engine


def error_response(exc):
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if code >= 500:
        logger.error("Request failed: %s", exc)
    return Response({'error': str(exc)}, status=code)


def query_float(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {value!r}")


class BloodRequestViewSet(mixins.CreateModelMixin,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.UpdateModelMixin,
                          viewsets.GenericViewSet):
    """
    Blood requests plus the matching workflow around them.

    Emergency requests (critical/urgent) start matching in the background
    as soon as they are created. Requests are never deleted; use the
    cancel action instead.
    """
    queryset = BloodRequest.objects.select_related('hospital').order_by('-created_at')
    serializer_class = BloodRequestSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get('status')
        if status_filter and status_filter != 'all':
            queryset = queryset.filter(status=status_filter)
        hospital = self.request.query_params.get('hospital')
        if hospital:
            queryset = queryset.filter(hospital_id=hospital)
        return queryset

    def perform_create(self, serializer):
        blood_request = serializer.save()
        if blood_request.is_emergency:
            request_id = blood_request.pk
            transaction.on_commit(lambda: run_emergency_workflow.delay(request_id))
            logger.info("Emergency request %s queued for matching", request_id)

    @action(detail=True, methods=['get'])
    def matches(self, request, pk=None):
        """Ranked donor candidates for a request"""
        blood_request = self.get_object()
        include_ineligible = request.query_params.get('include_ineligible', 'true').lower() != 'false'
        try:
            radius = query_float(request, 'radius')
            limit = query_float(request, 'limit')
            candidates = get_engine().find_matching_donors(
                blood_request, search_radius_km=radius, include_ineligible=include_ineligible
            )
        except MatchingError as exc:
            return error_response(exc)

        if limit:
            candidates = candidates[:int(limit)]
        return Response({
            'request_id': blood_request.pk,
            'count': len(candidates),
            'eligible_count': sum(1 for candidate in candidates if candidate.is_eligible),
            'donors': MatchCandidateSerializer(candidates, many=True).data,
        })

    @action(detail=True, methods=['post'])
    def notify_donors(self, request, pk=None):
        """Notify the selected donors, or the best eligible ones when none are given"""
        blood_request = self.get_object()
        serializer = NotifyDonorsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        engine = get_engine()

        try:
            if 'donor_ids' in serializer.validated_data:
                result = engine.notify_selected(blood_request, serializer.validated_data['donor_ids'])
                summary = {
                    'notifications_sent': len(result.notifications),
                    'failures': [{'donor_id': f.donor_id, 'error': str(f.error)} for f in result.failures],
                    'activated': result.activated,
                }
            else:
                limit = serializer.validated_data.get('limit', EMERGENCY_NOTIFY_LIMIT)
                summary = engine.start_emergency_workflow(blood_request, limit=limit)
                summary['donors'] = MatchCandidateSerializer(summary['donors'], many=True).data
        except MatchingError as exc:
            return error_response(exc)

        blood_request.refresh_from_db(fields=['status'])
        summary['status'] = blood_request.status
        summary['message'] = f"Successfully notified {summary['notifications_sent']} donors"
        return Response(summary, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'])
    def respond(self, request, pk=None):
        """Record a donor's answer"""
        blood_request = self.get_object()
        serializer = RespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        donor = DonorProfile.objects.get(pk=serializer.validated_data['donor_id'])

        try:
            response = get_engine().respond(
                blood_request,
                donor,
                serializer.validated_data['status'],
                serializer.validated_data['message'],
            )
        except MatchingError as exc:
            return error_response(exc)

        blood_request.refresh_from_db(fields=['status'])
        return Response({
            'response': DonorResponseSerializer(response).data,
            'request_status': blood_request.status,
        })

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        blood_request = self.get_object()
        try:
            withdrawn = get_engine().cancel_request(blood_request)
        except MatchingError as exc:
            return error_response(exc)
        return Response({'status': BloodRequest.STATUS_CANCELLED, 'notifications_withdrawn': withdrawn})

    @action(detail=True, methods=['get'])
    def response_stats(self, request, pk=None):
        return Response(hospital_utils.response_stats(self.get_object()))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_stats(request):
    """Emergency statistics for one hospital over the last 24 hours"""
    hospital_id = request.query_params.get('hospital')
    if not hospital_id or not hospital_id.isdigit():
        return Response({'error': 'hospital query parameter must be a hospital id'}, status=status.HTTP_400_BAD_REQUEST)
    hospital = get_object_or_404(HospitalProfile, pk=hospital_id)
    return Response({
        'hospital': hospital.pk,
        'hospital_name': hospital.hospital_name,
        'last_24_hours': hospital_utils.emergency_stats(hospital),
    })
