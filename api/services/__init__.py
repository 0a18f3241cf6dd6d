# api/services/__init__.py
"""
API Services Package

Centralizes service implementations for clean business logic
separation from route handlers.
"""

from api.services.scheduling_service import SchedulingService, get_scheduling_service

__all__ = ["SchedulingService", "get_scheduling_service"]
