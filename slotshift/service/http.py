"""HTTP client for the appointment-management schedule service."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from slotshift.scheduling.models import Schedule
from slotshift.service.base import (
    CommitError,
    ScheduleService,
    ServiceConnectionError,
    ServiceError,
)

logger = logging.getLogger(__name__)


def parse_schedules(payload: Any) -> list[Schedule]:
    """Accept a bare list or a ``{"data": [...]}`` / ``{"results": [...]}`` envelope."""
    if isinstance(payload, dict):
        payload = payload.get("data") or payload.get("results") or []
    if not isinstance(payload, list):
        raise ServiceError(f"Unexpected schedules payload: {type(payload).__name__}")
    try:
        return [Schedule.model_validate(item) for item in payload]
    except ValidationError as e:
        logger.error(f"Schedule payload failed validation: {e}")
        raise ServiceError(f"Invalid schedule payload: {e}") from e


class HttpScheduleService(ScheduleService):
    """Schedule service over the dashboard's REST endpoints.

    Schedule fetches are retried on connection errors and timeouts; commits
    are sent exactly once, so a failed commit is reported to the caller.
    """

    SCHEDULES_PATH = "schedule/"
    TRANSFER_PATH = "appointment-management/update-slot"
    MINUTE_SHIFT_PATH = "appointment-management/shift-slots"
    DAY_SHIFT_PATH = "appointment-management/shift-slots-day"
    SCHEDULE_DELETE_PATH = "schedule/bulk-delete"
    SLOT_DELETE_PATH = "schedule/slot/bulk-delete"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service base URL (trailing slash recommended)
            token: Bearer token, if the service requires one
            timeout: Request timeout in seconds
            max_retries: Attempts for schedule fetches
            client: Preconfigured client (tests inject a mock transport)
        """
        self.base_url = base_url
        self.max_retries = max_retries
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout, headers=headers
        )

    @classmethod
    def from_settings(cls) -> "HttpScheduleService":
        from slotshift.config import get_settings

        settings = get_settings()
        return cls(
            base_url=settings.schedule_service_url,
            token=settings.schedule_service_token or None,
            timeout=settings.schedule_service_timeout,
            max_retries=settings.fetch_max_retries,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # Reads

    async def fetch_schedules(self, practitioner_id: str) -> list[Schedule]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ServiceConnectionError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            reraise=True,
        ):
            with attempt:
                payload = await self._request(
                    "GET",
                    self.SCHEDULES_PATH,
                    params={"practitioner_id": practitioner_id, "skip": 0, "limit": 1000},
                )
        return parse_schedules(payload)

    # Commands

    async def commit_transfer(
        self,
        appointment_id: str,
        new_slot_id: str,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> None:
        await self._command(
            "PUT",
            self.TRANSFER_PATH,
            {
                "appointment_id": appointment_id,
                "new_slot_id": new_slot_id,
                "reason": reason or "",
                "changed_by": changed_by or "",
            },
        )

    async def commit_minute_shift(
        self, schedule_id: str, minutes: int, reason: str, actor_id: str
    ) -> None:
        await self._command(
            "PUT",
            self.MINUTE_SHIFT_PATH,
            {
                "schedule_id": schedule_id,
                "delay_minutes": minutes,
                "reason": reason,
                "changed_by": actor_id,
            },
        )

    async def commit_day_shift(
        self, schedule_id: str, days: int, reason: str, actor_id: str
    ) -> None:
        await self._command(
            "PUT",
            self.DAY_SHIFT_PATH,
            {
                "schedule_id": schedule_id,
                "shift_value": days,
                "reason": reason,
                "changed_by": actor_id,
            },
        )

    async def commit_schedule_deletion(self, schedule_ids: list[str]) -> None:
        await self._command("POST", self.SCHEDULE_DELETE_PATH, {"schedule_ids": schedule_ids})

    async def commit_slot_deletion(self, slot_ids: list[str]) -> None:
        await self._command("POST", self.SLOT_DELETE_PATH, {"slot_ids": slot_ids})

    # Transport

    async def _command(self, method: str, path: str, body: dict[str, Any]) -> None:
        try:
            await self._request(method, path, json=body)
        except CommitError:
            raise
        except ServiceError as e:
            raise CommitError(str(e)) from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.warning(f"Schedule service unreachable ({method} {path}): {e}")
            raise ServiceConnectionError(str(e)) from e
        except httpx.HTTPError as e:
            raise ServiceError(str(e)) from e

        if response.is_error:
            detail = response.text[:200]
            logger.error(
                f"Schedule service error: {method} {path} status={response.status_code} {detail}"
            )
            if method == "GET":
                raise ServiceError(f"{method} {path} failed with {response.status_code}")
            raise CommitError(
                f"{method} {path} failed with {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
