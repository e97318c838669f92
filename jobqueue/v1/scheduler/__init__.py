"""
Recurring job scheduler: restricted cron expressions, durable definitions
and a tick loop that enqueues due jobs.
"""
