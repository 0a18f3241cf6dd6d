"""
API Routes Package

Centralizes route management with proper module organization
and clean import structure.
"""

from api.routes import webhooks
from api.routes import cron
from api.routes import sessions

__all__ = ["webhooks", "cron", "sessions"]
