"""
Celery Task Modules

Background tasks:
- notifications.py: Email delivery for workflow notifications
"""

from proexchange.tasks.notifications import deliver_notification

__all__ = [
    "deliver_notification",
]
