"""
Built-in recurring definitions seeded when the scheduler starts.

A default is only created when no definition with the same name exists, so
operator edits (including pausing) survive restarts.
"""

from typing import Any

from jobqueue.v1.jobs.models import JobType

DEFAULT_SCHEDULES: list[dict[str, Any]] = [
    {
        "name": "Daily Job Scraping",
        "job_type": JobType.SCHEDULED_SCRAPING.value,
        "schedule_expression": "0 2 * * *",  # 02:00 every day
        "config": {
            "search_query": "software engineer",
            "location": "United States",
            "limit": 100,
            "sources": ["indeed", "linkedin"],
        },
        "priority": 5,
    },
    {
        "name": "Weekly Comprehensive Scraping",
        "job_type": JobType.SCHEDULED_SCRAPING.value,
        "schedule_expression": "0 3 * * 0",  # 03:00 every Sunday
        "config": {
            "search_query": "tech jobs",
            "location": "United States",
            "limit": 500,
            "sources": ["indeed", "linkedin"],
        },
        "priority": 10,
    },
    {
        "name": "Daily Queue Maintenance",
        "job_type": JobType.MAINTENANCE_CLEANUP.value,
        "schedule_expression": "30 4 * * *",
        "config": {"tasks": ["cleanup_jobs", "release_expired_leases"]},
        "priority": 0,
    },
]
