"""
Scheduling Platform API Client

Pulls employees, assignments and absences from the external scheduling
platform with bounded retries and exponential backoff.
"""

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from workforce_sync.utils.errors import (
    SchedulingApiError,
    SchedulingAuthError,
    SchedulingUnavailableError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

class SchedulingApiConfig(BaseModel):
    """Connection settings handed explicitly to the client."""

    base_url: str = Field(default="", description="Platform base URL")
    session_cookie: str = Field(default="", description="JSESSIONID session cookie value")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Request timeout")

    # Retry settings
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    initial_retry_delay: float = Field(default=1.0, ge=0, description="Initial delay in seconds")
    max_retry_delay: float = Field(default=30.0, ge=0, description="Max delay between attempts")
    retry_multiplier: float = Field(default=2.0, ge=1, description="Exponential backoff multiplier")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.session_cookie)


# =============================================================================
# Client
# =============================================================================

class SchedulingApiClient:
    """
    Synchronous client for the scheduling platform.

    5xx responses, timeouts and connection errors are retried; 401/403 fail
    immediately with SchedulingAuthError; other 4xx with SchedulingApiError.
    """

    def __init__(
        self,
        config: SchedulingApiConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={
                "Cookie": f"JSESSIONID={config.session_cookie}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SchedulingApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    def list_services(self) -> List[Dict[str, Any]]:
        """List the services (centres) visible to the session."""
        return self._get_list("/api/services")

    def list_employees(
        self,
        service_id: str,
        business_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List employees assigned to a service."""
        return self._get_list(
            "/api/employees",
            self._params(serviceId=service_id, businessId=business_id),
        )

    def list_assignments(
        self,
        start_date: date,
        end_date: date,
        service_id: str,
        business_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List shift assignments of a service in a date range (inclusive)."""
        return self._get_list(
            "/api/assignments",
            self._params(
                startDate=start_date.isoformat(),
                endDate=end_date.isoformat(),
                serviceId=service_id,
                businessId=business_id,
            ),
        )

    def list_absences(
        self,
        start_date: date,
        end_date: date,
        service_id: str,
        business_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List absences of a service in a date range (inclusive)."""
        return self._get_list(
            "/api/absences",
            self._params(
                startDate=start_date.isoformat(),
                endDate=end_date.isoformat(),
                serviceId=service_id,
                businessId=business_id,
            ),
        )

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    @staticmethod
    def _params(**values: Optional[str]) -> Dict[str, str]:
        return {key: value for key, value in values.items() if value}

    def _get_list(self, path: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        payload = self._request("GET", path, params)
        if isinstance(payload, dict):
            for key in ("data", "content", "items"):
                if isinstance(payload.get(key), list):
                    return payload[key]
        if not isinstance(payload, list):
            raise SchedulingApiError(
                message=f"Unexpected response shape from {path}",
                path=path,
            )
        return payload

    def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        attempts = self.config.max_retries + 1
        last_error = ""

        for attempt in range(attempts):
            try:
                response = self._client.request(method, path, params=params)
            except httpx.TimeoutException as e:
                last_error = f"Timeout: {str(e)}"
            except httpx.RequestError as e:
                last_error = f"Request error: {str(e)}"
            else:
                if response.status_code in (401, 403):
                    logger.error(
                        f"Scheduling platform rejected credentials on {path} ({response.status_code})",
                        extra={"path": path, "status": response.status_code},
                    )
                    raise SchedulingAuthError(status=response.status_code, path=path)

                if response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}: {response.reason_phrase}"
                elif response.status_code >= 400:
                    raise SchedulingApiError(
                        message=f"Scheduling platform returned HTTP {response.status_code} for {path}",
                        status=response.status_code,
                        path=path,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError:
                        raise SchedulingApiError(
                            message=f"Invalid JSON from {path}",
                            status=response.status_code,
                            path=path,
                        )

            if attempt < attempts - 1:
                delay = self._calculate_retry_delay(attempt)
                logger.info(
                    f"Scheduling platform call {method} {path} failed ({last_error}), "
                    f"retrying in {delay}s (attempt {attempt + 1}/{attempts})"
                )
                self._sleep(delay)

        logger.error(
            f"Scheduling platform unavailable after {attempts} attempts: {last_error}",
            extra={"path": path},
        )
        raise SchedulingUnavailableError(
            message=f"Scheduling platform unavailable after {attempts} attempts: {last_error}",
            path=path,
        )

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = self.config.initial_retry_delay * (self.config.retry_multiplier ** attempt)
        return min(delay, self.config.max_retry_delay)
