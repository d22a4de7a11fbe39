"""cachesync: cache consistency and event propagation over Redis.

Provides:
- Cache-aside store with graceful degradation when Redis is unreachable
- Consistency monitoring with refresh-ahead and stale detection
- Pub/Sub event publishing and subscription with retrying handlers
- Dead-letter forwarding for events whose handlers exhaust their retries
"""

__version__ = "0.1.0"
