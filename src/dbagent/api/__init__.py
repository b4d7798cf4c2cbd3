"""HTTP API for the dbagent scheduler.

Serves the scheduler tick endpoint used by cron-driven deployments, the
schedule monitoring views, and a health check.
"""

from dbagent.api.app import create_app

__all__ = ["create_app"]
