"""Timing instrumentation for analysis hot paths."""

from flow_engine.telemetry.profiling import (
    ProfileCollector,
    ProfileResult,
    profile_operation,
    profiled,
)

__all__ = ["ProfileCollector", "ProfileResult", "profile_operation", "profiled"]
