"""
Authenticated HTTP access to the Meta Graph API.

Every failure is classified into RateLimitError, TransientError or
RequestError (see app.services.errors). The access token travels in the
Authorization header and is never logged.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple
import httpx
from app.config import settings
from app.services.errors import (
    DataSizeError,
    MetaApiError,
    RateLimitError,
    RequestError,
    TokenExpiredError,
    TransientError,
)

logger = logging.getLogger(__name__)

# Application, user, ad account and business use case throttling
RATE_LIMIT_ERROR_CODES = {4, 17, 32, 613}
BUSINESS_USE_CASE_CODES = range(80000, 80015)
# "An unknown error occurred" / "Service temporarily unavailable"
TRANSIENT_ERROR_CODES = {1, 2}
TOKEN_ERROR_CODES = {190}


def _load_header(headers: httpx.Headers, name: str) -> Any:
    raw = headers.get(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug(f"Ignoring malformed {name} header")
        return None


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_usage_headers(headers: Mapping[str, str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Extract (usage_percent, retry_after_seconds) from Graph API usage headers.

    Usage is the highest percentage reported by X-App-Usage,
    X-Ad-Account-Usage and X-Business-Use-Case-Usage. Retry-after comes from
    Retry-After, estimated_time_to_regain_access (minutes) or
    reset_time_duration (seconds), whichever is longest.
    """
    headers = httpx.Headers(headers)
    usages: List[float] = []
    waits: List[float] = []

    app_usage = _load_header(headers, "x-app-usage")
    if isinstance(app_usage, dict):
        for metric in ("call_count", "total_cputime", "total_time"):
            value = _as_float(app_usage.get(metric))
            if value is not None:
                usages.append(value)

    account_usage = _load_header(headers, "x-ad-account-usage")
    if isinstance(account_usage, dict):
        value = _as_float(account_usage.get("acc_id_util_pct"))
        if value is not None:
            usages.append(value)
        reset = _as_float(account_usage.get("reset_time_duration"))
        if reset:
            waits.append(reset)

    buc_usage = _load_header(headers, "x-business-use-case-usage")
    if isinstance(buc_usage, dict):
        for entries in buc_usage.values():
            for entry in entries if isinstance(entries, list) else []:
                for metric in ("call_count", "total_cputime", "total_time"):
                    value = _as_float(entry.get(metric))
                    if value is not None:
                        usages.append(value)
                regain = _as_float(entry.get("estimated_time_to_regain_access"))
                if regain:
                    waits.append(regain * 60)

    retry_after = _as_float(headers.get("retry-after"))
    if retry_after:
        waits.append(retry_after)

    return (max(usages) if usages else None, max(waits) if waits else None)


class RateLimitAwareHttpClient:
    """Async Graph API client that raises typed errors instead of generic failures."""

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        usage_threshold: Optional[float] = None,
        page_limit: Optional[int] = None,
        max_pages: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.meta_request_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.meta_max_retries
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None
            else settings.meta_retry_base_delay_seconds
        )
        self.usage_threshold = (
            usage_threshold if usage_threshold is not None
            else settings.meta_rate_limit_usage_threshold
        )
        self.page_limit = page_limit or settings.meta_page_limit
        self.max_pages = max_pages or settings.meta_max_pages
        self.last_usage_percent: Optional[float] = None

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.meta_base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def __aenter__(self) -> "RateLimitAwareHttpClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("POST", path, data=data)

    async def get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Follow cursor pagination and return every row of the ``data`` arrays.

        Stops after ``max_pages`` pages.
        """
        params = dict(params or {})
        params.setdefault("limit", self.page_limit)
        results: List[Dict[str, Any]] = []

        for _ in range(self.max_pages):
            payload = await self.get(path, params)
            results.extend(payload.get("data") or [])

            paging = payload.get("paging") or {}
            after = (paging.get("cursors") or {}).get("after")
            if not paging.get("next") or not after:
                break
            params["after"] = after
        else:
            logger.warning(f"Stopped paginating {path} after {self.max_pages} pages")

        return results

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request, retrying TransientError up to ``max_retries`` times."""
        attempt = 0
        while True:
            try:
                return await self._send(method, path, params, data)
            except TransientError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"Transient Meta API failure on {method} {path} ({e.message}), "
                    f"retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, params=params, data=data)
        except httpx.TimeoutException as e:
            logger.error(f"Meta API {method} {path} timed out after {self.timeout}s")
            raise TransientError(
                f"Meta API request timed out after {self.timeout:g} seconds",
                timed_out=True,
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Meta API {method} {path} connection failure: {e}")
            raise TransientError(f"Failed to connect to Meta API: {e}") from e

        usage_percent, retry_after = parse_usage_headers(response.headers)
        if usage_percent is not None:
            self.last_usage_percent = usage_percent
        logger.debug(f"Meta API {method} {path} -> {response.status_code} (usage={usage_percent})")

        if response.is_success:
            if usage_percent is not None and usage_percent >= self.usage_threshold:
                logger.warning(f"Meta API usage at {usage_percent:.0f}% after {method} {path}")
            try:
                return response.json()
            except ValueError as e:
                raise TransientError(
                    "Meta API returned an unreadable response",
                    status_code=response.status_code,
                ) from e

        error = self._classify(response, usage_percent, retry_after)
        logger.warning(
            f"Meta API {method} {path} failed: {error.kind} "
            f"status={response.status_code} code={error.code} subcode={error.subcode} "
            f"fbtrace_id={error.fbtrace_id} message={error.message}"
        )
        raise error

    def _classify(
        self,
        response: httpx.Response,
        usage_percent: Optional[float],
        retry_after: Optional[float],
    ) -> MetaApiError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            error = {}

        status = response.status_code
        code = error.get("code")
        message = error.get("message") or f"Meta API error: HTTP {status}"
        details = {
            "status_code": status,
            "code": code,
            "subcode": error.get("error_subcode"),
            "fbtrace_id": error.get("fbtrace_id"),
        }

        if (
            status == 429
            or code in RATE_LIMIT_ERROR_CODES
            or code in BUSINESS_USE_CASE_CODES
            or (usage_percent is not None and usage_percent >= self.usage_threshold)
        ):
            return RateLimitError(
                message,
                retry_after=retry_after,
                usage_percent=usage_percent,
                **details,
            )
        if "reduce the amount of data" in message.lower():
            return DataSizeError(message, **details)
        if status >= 500 or code in TRANSIENT_ERROR_CODES:
            return TransientError(message, **details)
        if code in TOKEN_ERROR_CODES:
            return TokenExpiredError(message, **details)
        return RequestError(message, **details)
