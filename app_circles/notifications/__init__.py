"""
Member notifications for approved groups.
"""

from app_circles.notifications.dispatcher import NotificationDispatcher, EmailIntroductionDispatcher
from app_circles.notifications.email_service import EmailService

__all__ = ["NotificationDispatcher", "EmailIntroductionDispatcher", "EmailService"]
