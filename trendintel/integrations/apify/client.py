"""
Apify API v2 client.

Three primitives plus one convenience wrapper:
1. start_actor_run(actor_id, input_json) -> RunInfo
2. poll_run(run_id, timeout_s, interval_s) -> RunInfo
3. fetch_dataset_items(dataset_id, limit, offset) -> list[dict]
4. run_actor(actor_id, input_json, limit) -> list[dict]

Endpoints (https://docs.apify.com/api/v2):
- POST /v2/acts/{actorId}/runs
- GET /v2/actor-runs/{runId}
- GET /v2/datasets/{datasetId}/items

Every call is guarded by require_apify_enabled(). With APIFY_ENABLED=false
(the default) any call raises ApifyDisabledError before touching the network.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from urllib.parse import quote

import requests

from trendintel.core.guardrails import require_apify_enabled

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("SUCCEEDED", "FAILED", "TIMED-OUT", "ABORTED")

_STATUS_HINTS = {
    401: "Apify authentication failed (401). Check APIFY_TOKEN and account credits.",
    402: "Apify payment required (402). Actor credits are exhausted.",
    403: "Apify access denied (403). The account cannot run this actor.",
}


class ApifyError(Exception):
    """Raised when the Apify API returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body[:500] if body else None
        super().__init__(message)


class ApifyTimeoutError(ApifyError):
    """Raised when polling for run completion times out."""

    pass


@dataclass
class RunInfo:
    """
    Snapshot of an Apify actor run.

    Status values: READY, RUNNING, SUCCEEDED, FAILED, TIMED-OUT, ABORTED.
    """

    run_id: str
    actor_id: str
    status: str
    dataset_id: str | None
    started_at: datetime | None
    finished_at: datetime | None
    error_message: str | None = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_success(self) -> bool:
        return self.status == "SUCCEEDED"


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class ApifyClient:
    """
    HTTP client for Apify API v2.

    Authentication via Bearer token on a shared requests.Session.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.apify.com",
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not token:
            raise ValueError("Apify token is required")
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._sleep = sleep
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        })

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    def start_actor_run(self, actor_id: str, input_json: dict[str, Any]) -> RunInfo:
        """
        Start an actor run.

        Raises:
            ApifyDisabledError: If APIFY_ENABLED=false
            ApifyError: If the API returns an error
        """
        require_apify_enabled()

        # Actor ids contain a slash ("owner/name"); it must stay one path segment
        url = f"{self.base_url}/v2/acts/{quote(actor_id, safe='')}/runs"

        call_start_ms = time.monotonic() * 1000
        logger.info("APIFY_CALL_START actor_id=%s url=%s", actor_id, url)

        response = self._request("post", url, label=actor_id, json=input_json, timeout=30)
        duration_ms = int(time.monotonic() * 1000 - call_start_ms)

        if not response.ok:
            logger.error(
                "APIFY_CALL_END actor_id=%s status=HTTP_ERROR duration_ms=%d http_status=%d",
                actor_id,
                duration_ms,
                response.status_code,
            )
            raise ApifyError(
                _STATUS_HINTS.get(
                    response.status_code,
                    f"Failed to start actor run: HTTP {response.status_code}",
                ),
                status_code=response.status_code,
                body=response.text,
            )

        run_info = self._parse_run_info(response.json().get("data", {}), actor_id)
        logger.info(
            "APIFY_CALL_END actor_id=%s run_id=%s status=STARTED duration_ms=%d apify_status=%s",
            actor_id,
            run_info.run_id,
            duration_ms,
            run_info.status,
        )
        return run_info

    def poll_run(self, run_id: str, timeout_s: int = 180, interval_s: float = 3) -> RunInfo:
        """
        Poll run status until it reaches a terminal state.

        Raises:
            ApifyDisabledError: If APIFY_ENABLED=false
            ApifyTimeoutError: If the run is not terminal after timeout_s
            ApifyError: If the API returns an error
        """
        require_apify_enabled()

        url = f"{self.base_url}/v2/actor-runs/{run_id}"
        start_time = time.monotonic()
        logger.info("Polling run: run_id=%s, timeout_s=%d", run_id, timeout_s)

        while True:
            elapsed = time.monotonic() - start_time
            if elapsed > timeout_s:
                raise ApifyTimeoutError(
                    f"Polling timed out after {timeout_s}s for run_id={run_id}"
                )

            response = self._request("get", url, label=run_id, timeout=30)
            if not response.ok:
                raise ApifyError(
                    f"Failed to get run status: {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )

            data = response.json().get("data", {})
            run_info = self._parse_run_info(data, data.get("actId", ""))
            if run_info.is_terminal():
                logger.info(
                    "Run completed: run_id=%s, status=%s", run_info.run_id, run_info.status
                )
                return run_info

            logger.debug(
                "Run still in progress: run_id=%s, status=%s, elapsed=%.1fs",
                run_id,
                run_info.status,
                elapsed,
            )
            self._sleep(interval_s)

    def fetch_dataset_items(
        self,
        dataset_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """
        Fetch items from a dataset.

        Raises:
            ApifyDisabledError: If APIFY_ENABLED=false
            ApifyError: If the API returns an error
        """
        require_apify_enabled()

        url = f"{self.base_url}/v2/datasets/{dataset_id}/items"
        logger.info(
            "Fetching dataset items: dataset_id=%s, limit=%d, offset=%d",
            dataset_id,
            limit,
            offset,
        )

        response = self._request(
            "get",
            url,
            label=dataset_id,
            params={"limit": limit, "offset": offset},
            timeout=60,
        )
        if not response.ok:
            raise ApifyError(
                f"Failed to fetch dataset items: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        # Items come back as a bare array; some proxies wrap them
        items = response.json()
        if isinstance(items, dict) and "items" in items:
            items = items["items"]

        logger.info("Fetched %d items from dataset", len(items))
        return items

    def run_actor(
        self,
        actor_id: str,
        input_json: dict[str, Any],
        limit: int,
        timeout_s: int = 180,
    ) -> list[dict[str, Any]]:
        """
        Start an actor, wait for it, and return up to `limit` dataset items.

        Raises:
            ApifyError: If the run does not succeed or has no dataset
        """
        run_info = self.start_actor_run(actor_id, input_json)
        run_info = self.poll_run(run_info.run_id, timeout_s=timeout_s)
        if not run_info.is_success():
            raise ApifyError(
                f"Actor run {run_info.run_id} ended with status {run_info.status}: "
                f"{run_info.error_message or 'no message'}"
            )
        if not run_info.dataset_id:
            raise ApifyError(f"Actor run {run_info.run_id} produced no dataset")
        return self.fetch_dataset_items(run_info.dataset_id, limit=limit)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _request(self, method: str, url: str, label: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method.upper(), url, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error("APIFY_CALL_END target=%s status=TIMEOUT error=%s", label, e)
            raise ApifyError(
                "Connection to Apify API timed out. The service may be slow or overloaded."
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error("APIFY_CALL_END target=%s status=CONNECTION_ERROR error=%s", label, e)
            raise ApifyError(
                "Could not connect to Apify API. Please check your network connection."
            ) from e
        except requests.RequestException as e:
            logger.error("APIFY_CALL_END target=%s status=ERROR error=%s", label, e)
            raise ApifyError(f"Request failed: {e}") from e

    def _parse_run_info(self, data: dict[str, Any], actor_id: str) -> RunInfo:
        status = data.get("status", "UNKNOWN")
        return RunInfo(
            run_id=data.get("id", ""),
            actor_id=actor_id or data.get("actId", ""),
            status=status,
            dataset_id=data.get("defaultDatasetId"),
            started_at=_parse_timestamp(data.get("startedAt")),
            finished_at=_parse_timestamp(data.get("finishedAt")),
            error_message=data.get("statusMessage") if status == "FAILED" else None,
        )
