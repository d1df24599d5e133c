"""
API Routes
"""
from backend.api.routes import cron, emails, expansions, secure_message, settings

__all__ = ["cron", "emails", "expansions", "secure_message", "settings"]
