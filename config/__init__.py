"""
Configuration module - fixed constants shared across apps.
"""

from config.email_config import RESEND_API_URL, EMAIL_DEFAULTS, INTRODUCTION_SUBJECT

__all__ = ["RESEND_API_URL", "EMAIL_DEFAULTS", "INTRODUCTION_SUBJECT"]
