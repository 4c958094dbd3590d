from datetime import date
from decimal import Decimal

import httpx
from fastapi import HTTPException
from pydantic import BaseModel

from .breaker import CircuitBreaker, CircuitBreakerOpen
from .config import ACCOMMODATION_SERVICE_URL, UPSTREAM_TIMEOUT_SECONDS, USER_SERVICE_URL

ACCOMMODATION_NOT_FOUND = "ACCOMMODATION_NOT_FOUND"


class AccommodationValidation(BaseModel):
    valid: bool
    error_code: str | None = None
    error_message: str | None = None
    host_id: str | None = None
    total_price: Decimal | None = None
    pricing_mode: str | None = None
    approval_mode: str | None = None
    accommodation_name: str | None = None

    @property
    def is_auto_approval(self) -> bool:
        return (self.approval_mode or "").upper() == "AUTOMATIC"


class UserSummary(BaseModel):
    found: bool
    user_id: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


async def _call_with_breaker(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    payload: dict | None = None,
    not_found_ok: bool = False,
):
    """
    One upstream call through the breaker, bounded by UPSTREAM_TIMEOUT_SECONDS.

    Returns the decoded body, or None for a 404 when not_found_ok. Raises
    HTTPException: 503 while the circuit is open, 504 on timeout, the upstream
    status for error responses, 502 when the upstream is unreachable or answers
    with something that is not JSON. Only 5xx, timeouts and transport errors
    count against the breaker.
    """
    try:
        await breaker.allow_request()
    except CircuitBreakerOpen as e:
        raise HTTPException(status_code=503, detail=str(e))

    try:
        async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS) as client:
            resp = await client.request(method=method, url=url, json=payload)
    except httpx.TimeoutException:
        await breaker.record_failure()
        raise HTTPException(status_code=504, detail=f"Timeout calling upstream: {url}")
    except httpx.HTTPError:
        await breaker.record_failure()
        raise HTTPException(status_code=502, detail=f"Bad gateway calling upstream: {url}")

    if resp.status_code >= 500:
        await breaker.record_failure()
    else:
        await breaker.record_success()

    if resp.status_code == 404 and not_found_ok:
        return None
    if resp.is_error:
        raise HTTPException(status_code=resp.status_code, detail=resp.text)
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        raise HTTPException(status_code=502, detail=f"Invalid response from upstream: {url}")


class AccommodationClient:
    """Resource validator: existence, capacity, price, host and approval mode."""

    def __init__(self, base_url: str = ACCOMMODATION_SERVICE_URL):
        self.base_url = base_url
        self.breaker = CircuitBreaker("accommodation-service", failure_threshold=5, reset_timeout_seconds=10)

    async def validate(
        self,
        accommodation_id: str,
        start_date: date,
        end_date: date,
        guest_count: int,
    ) -> AccommodationValidation:
        data = await _call_with_breaker(
            self.breaker,
            "POST",
            f"{self.base_url}/internal/accommodations/{accommodation_id}/validate-reservation",
            {
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "guest_count": guest_count,
            },
            not_found_ok=True,
        )
        if data is None:
            return AccommodationValidation(
                valid=False,
                error_code=ACCOMMODATION_NOT_FOUND,
                error_message=f"Accommodation not found with id: {accommodation_id}",
            )
        return AccommodationValidation(**data)


class UserClient:
    """Identity lookup used to address notifications."""

    def __init__(self, base_url: str = USER_SERVICE_URL):
        self.base_url = base_url
        self.breaker = CircuitBreaker("user-service", failure_threshold=5, reset_timeout_seconds=10)

    async def get_summary(self, user_id: str) -> UserSummary:
        data = await _call_with_breaker(
            self.breaker,
            "GET",
            f"{self.base_url}/internal/users/{user_id}/summary",
            not_found_ok=True,
        )
        # a 404 and an explicit found=false both mean no such user
        if not data or data.get("found") is False:
            return UserSummary(found=False)
        return UserSummary(**{**data, "found": True})


accommodation_client = AccommodationClient()
user_client = UserClient()
