"""Base HTTP Client for the Job Queue API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()


class JobQueueAPIError(Exception):
    """Base exception for Job Queue API errors"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class APIClient:
    """HTTP client for the Job Queue API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: int = 30,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = headers or {}
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.default_headers,
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle API response and extract data"""
        try:
            data = response.json()
        except ValueError:
            console.print(f"[red]Failed to parse response: {response.text}[/red]")
            raise JobQueueAPIError(
                f"Invalid JSON response: {response.status_code}", response.status_code
            ) from None

        if response.status_code >= 400:
            error_msg = "Unknown error"
            if isinstance(data, dict):
                error = data.get("error")
                if isinstance(error, dict):
                    error_msg = error.get("message", error_msg)
                elif "detail" in data:
                    error_msg = str(data["detail"])
            console.print(Panel(f"[red]{error_msg}[/red]", title="API Error"))
            raise JobQueueAPIError(
                f"API Error {response.status_code}: {error_msg}", response.status_code
            )

        # Handle envelope format (with "ok" field)
        if isinstance(data, dict) and "ok" in data:
            if not data.get("ok", False):
                error_msg = data.get("error", {}).get("message", "Request failed")
                console.print(Panel(f"[red]{error_msg}[/red]", title="Request Failed"))
                raise JobQueueAPIError(error_msg, response.status_code)
            return data.get("data", {})

        # Handle direct response format (no envelope)
        return data

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request under the /v1 prefix"""
        try:
            response = self.client.request(
                method, f"/v1{path}", params=params, json=json
            )
        except httpx.RequestError as e:
            console.print(f"[red]Connection error: {e}[/red]")
            raise JobQueueAPIError(f"Connection failed: {e}") from None
        return self._handle_response(response)

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request"""
        return self.request("GET", path, params=params)

    def post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        """Make POST request"""
        return self.request("POST", path, json=json)

    def patch(self, path: str, json: dict[str, Any] | None = None) -> Any:
        """Make PATCH request"""
        return self.request("PATCH", path, json=json)

    def delete(self, path: str) -> Any:
        """Make DELETE request"""
        return self.request("DELETE", path)
