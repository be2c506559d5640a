"""API module - Routes and dependencies"""
from .deps import get_current_username_dep, get_correlation_id_dep, get_instance_service

__all__ = ["get_current_username_dep", "get_correlation_id_dep", "get_instance_service"]
