"""Health subsystem — environment checks and the aggregated report."""

from .engine import Check, CheckOutcome, HealthCheckEngine, HealthReport
