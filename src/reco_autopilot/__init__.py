"""Recommendation autopilot: apply infrastructure recommendations and track them through CI."""

__version__ = "0.1.0"
