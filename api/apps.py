from django.apps import AppConfig, apps


class ApiConfig(AppConfig):
    name = 'api'
    verbose_name = 'Matching API'

    def ready(self):
        from bloodlink.engine import build_engine

        self.engine = build_engine(connections=apps.get_app_config('realtime').connections)
