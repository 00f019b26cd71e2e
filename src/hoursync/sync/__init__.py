"""
Sync subsystem.

Components:
- matching.py: client/task name normalization and comparison
- hours.py: locally-measured hours per task (cached time-entry sums)
- workspace.py: typed, cached workspace reads and cache-refreshing writes
- engine.py: TaskNode registry and the hierarchical aggregation algorithm
- poller.py: realtime / bulk / background loops feeding the engine
- watchdog.py: liveness check that ends the process when the loop stalls
"""
