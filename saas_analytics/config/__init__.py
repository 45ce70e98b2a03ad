"""
SaaS Analytics Pipeline
Configuration Module
"""
from .settings import ActivePredicate, PipelineSettings, Settings, StorageBackend, get_settings

__all__ = ["ActivePredicate", "PipelineSettings", "Settings", "StorageBackend", "get_settings"]
