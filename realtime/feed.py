# realtime/feed.py
"""
Change feed: turns model saves into published events.

Events go out after the surrounding transaction commits, so subscribers
never see rows that were rolled back.
"""
import logging

from django.db import transaction
from django.db.models.signals import post_save

from donors.models import DonorResponse
from hospitals.models import BloodRequest
from hospitals.signals import blood_request_status_changed
from realtime.connections import Event
from realtime.serializers import BloodRequestEventSerializer, DonorResponseEventSerializer

BLOOD_REQUESTS = 'blood_requests'
DONOR_RESPONSES = 'donor_responses'
REQUEST_UPDATES = 'request_updates'

logger = logging.getLogger(__name__)


class ChangeFeed:
    def __init__(self, connections):
        self.connections = connections
        self._uid = f"realtime-feed-{id(self)}"

    def connect(self):
        post_save.connect(self.on_blood_request_saved, sender=BloodRequest, dispatch_uid=f"{self._uid}-request")
        post_save.connect(self.on_response_saved, sender=DonorResponse, dispatch_uid=f"{self._uid}-response")
        blood_request_status_changed.connect(
            self.on_status_changed, sender=BloodRequest, dispatch_uid=f"{self._uid}-status"
        )

    def disconnect(self):
        post_save.disconnect(sender=BloodRequest, dispatch_uid=f"{self._uid}-request")
        post_save.disconnect(sender=DonorResponse, dispatch_uid=f"{self._uid}-response")
        blood_request_status_changed.disconnect(sender=BloodRequest, dispatch_uid=f"{self._uid}-status")

    def _publish_on_commit(self, topic, kind, payload):
        def publish():
            delivered = self.connections.publish(topic, Event(topic=topic, kind=kind, payload=payload))
            logger.debug("%s/%s event reached %d subscribers", topic, kind, delivered)
        transaction.on_commit(publish)

    def on_blood_request_saved(self, sender, instance, created, **kwargs):
        payload = dict(BloodRequestEventSerializer(instance).data)
        kind = 'created' if created else 'updated'
        if created:
            self._publish_on_commit(BLOOD_REQUESTS, kind, payload)
        self._publish_on_commit(REQUEST_UPDATES, kind, payload)

    def on_status_changed(self, sender, instance, previous, status, **kwargs):
        payload = dict(BloodRequestEventSerializer(instance).data)
        payload['previous_status'] = previous
        self._publish_on_commit(REQUEST_UPDATES, 'status_changed', payload)

    def on_response_saved(self, sender, instance, created, **kwargs):
        payload = dict(DonorResponseEventSerializer(instance).data)
        self._publish_on_commit(DONOR_RESPONSES, 'created' if created else 'updated', payload)
