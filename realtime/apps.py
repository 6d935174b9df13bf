from django.apps import AppConfig
from django.conf import settings


class RealtimeConfig(AppConfig):
    name = 'realtime'
    verbose_name = 'Real-time propagation'

    def ready(self):
        from realtime.connections import ConnectionManager
        from realtime.feed import ChangeFeed

        options = getattr(settings, 'BLOODLINK', {})
        self.connections = ConnectionManager(buffer_size=options.get('SUBSCRIPTION_BUFFER', 100))
        self.feed = ChangeFeed(self.connections)
        self.feed.connect()
