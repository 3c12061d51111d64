"""Utility modules."""

from job_tracker.utils.clock import MonotonicClock
from job_tracker.utils.latency import SimulatedLatency
from job_tracker.utils.logger import setup_logger

__all__ = ["MonotonicClock", "SimulatedLatency", "setup_logger"]
