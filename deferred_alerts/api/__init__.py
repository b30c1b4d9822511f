"""
FastAPI deferred-alerts service.

Provides REST API for alert scheduling with:
- /alerts - Unrestricted alert management
- /owner/alerts - Alert management scoped to the calling owner
- /notifications/{id}/clicked|closed - Display callbacks
- GET /health - Service health check
"""

from deferred_alerts.api.app import create_app

__all__ = ["create_app"]
