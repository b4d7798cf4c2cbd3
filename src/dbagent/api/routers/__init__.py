"""API routers: health, scheduler tick, schedules and run history."""
