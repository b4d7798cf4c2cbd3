"""
dbagent - PostgreSQL monitoring agent, playbook scheduler.

Subpackages:
- dbagent.core: models, settings, logging, storage and the scheduler itself
- dbagent.api: FastAPI surface (tick endpoint, schedule views)
- dbagent.cli: Typer command line
"""

__version__ = "0.3.0"
