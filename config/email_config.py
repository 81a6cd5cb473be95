"""
Email service configuration constants.

These are fixed values that don't change per environment.
Environment-specific values (API keys, SMTP credentials) are loaded from env vars.
"""

# Resend API endpoint
RESEND_API_URL = "https://api.resend.com/emails"

# Default values (can be overridden by env vars)
EMAIL_DEFAULTS = {
    "mode": "console",
    "from_email": "noreply@dadcircles.com",
    "from_name": "DadCircles",
    "team_name": "The DadCircles Team",
    "app_url": "http://localhost:3000",
}

INTRODUCTION_SUBJECT = "Meet Your DadCircles Group: {group_name}"
