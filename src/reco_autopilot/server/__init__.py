"""HTTP server for the autopilot service."""

from reco_autopilot.server.app import create_app, ApplyBody

__all__ = [
    'create_app',
    'ApplyBody',
]
