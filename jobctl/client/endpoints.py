"""API Endpoint Wrappers - Type-safe API calls"""

from typing import Any

import httpx

from .base import APIClient
from ..utils.config_manager import config


class JobQueueClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=api_config.get("timeout", 30),
            headers=final_headers,
            transport=transport,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Job Endpoints
    def list_jobs(
        self,
        status: list[str] | None = None,
        type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get specific job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def get_job_stats(self) -> dict[str, Any]:
        """Get queue statistics"""
        return self.api.get("/jobs/stats/overview")

    def enqueue_job(
        self,
        type: str,
        payload: Any,
        priority: int = 0,
        delay_seconds: float = 0,
        max_attempts: int | None = None,
    ) -> dict[str, Any]:
        """Enqueue a new job"""
        data: dict[str, Any] = {
            "type": type,
            "payload": payload,
            "priority": priority,
            "delay_seconds": delay_seconds,
        }
        if max_attempts is not None:
            data["max_attempts"] = max_attempts
        return self.api.post("/jobs", data)

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Reset one failed job to pending"""
        return self.api.post(f"/jobs/{job_id}/retry")

    def retry_failed(self, max_attempts: int = 5, limit: int = 50) -> dict[str, Any]:
        """Reset terminal failures below the attempt ceiling"""
        return self.api.post(
            "/jobs/retry-failed", {"max_attempts": max_attempts, "limit": limit}
        )

    def cleanup_jobs(self, older_than_days: float = 30) -> dict[str, Any]:
        """Delete completed jobs past retention"""
        return self.api.post("/jobs/cleanup", {"older_than_days": older_than_days})

    # Schedule Endpoints
    def list_schedules(self) -> dict[str, Any]:
        """List recurring definitions"""
        return self.api.get("/schedules")

    def get_schedule(self, schedule_id: str) -> dict[str, Any]:
        """Get specific recurring definition"""
        return self.api.get(f"/schedules/{schedule_id}")

    def create_schedule(
        self,
        name: str,
        type: str,
        schedule_expression: str,
        config: dict[str, Any] | None = None,
        priority: int = 5,
        is_active: bool = True,
    ) -> dict[str, Any]:
        """Create a recurring definition"""
        data = {
            "name": name,
            "type": type,
            "schedule_expression": schedule_expression,
            "config": config or {},
            "priority": priority,
            "is_active": is_active,
        }
        return self.api.post("/schedules", data)

    def update_schedule(self, schedule_id: str, **changes: Any) -> dict[str, Any]:
        """Partially update a recurring definition"""
        return self.api.patch(f"/schedules/{schedule_id}", changes)

    def delete_schedule(self, schedule_id: str) -> dict[str, Any]:
        """Remove a recurring definition"""
        return self.api.delete(f"/schedules/{schedule_id}")

    def get_schedule_stats(self) -> dict[str, Any]:
        """Get scheduler statistics"""
        return self.api.get("/schedules/stats/overview")
