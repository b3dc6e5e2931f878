"""REST API for observing the orchestrator and admitting tickets."""

from autopilot.api.app import create_app

__all__ = ["create_app"]
