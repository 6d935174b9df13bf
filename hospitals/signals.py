# hospitals/signals.py
"""
Signals for blood request lifecycle changes

Status moves go through conditional queryset updates, which never fire
post_save, so they are announced here instead.
"""
from django.dispatch import Signal

# kwargs: instance, previous, status
blood_request_status_changed = Signal()
