"""
Scheduled expiry of time-limited moderation state.

- **expiry_scheduler.py**: Keyed min-heap scheduler driven by one background
  task. Re-scheduling a key replaces its job; cancelled and superseded jobs are
  skipped lazily when they reach the top of the heap.
"""
