"""
Outbound request control.

Components:
- limiter.py: priority-aware sliding-window rate limiter and concurrency gate
- scheduler.py: per-provider limiter pools, credential round-robin, write serialization
- retry.py: linear backoff for transient (timeout) failures
"""

from .limiter import Priority, PriorityRateLimiter, PrioritySemaphore
from .retry import RetryPolicy, is_transient
from .scheduler import Permit, Provider, RequestScheduler

__all__ = [
    "Permit",
    "Priority",
    "PriorityRateLimiter",
    "PrioritySemaphore",
    "Provider",
    "RequestScheduler",
    "RetryPolicy",
    "is_transient",
]
