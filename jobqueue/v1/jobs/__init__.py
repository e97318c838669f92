"""
Background job queue.

This package provides a database-backed job system with:
- Priority and age ordered claiming through a single conditional update
- Registry-based pluggable handlers
- Bounded retries with exponential backoff
- Worker heartbeats and lease recovery for crashed workers
"""
