# FILE: contentgen/services/runs_client.py
#
# Client for the runs service (run + cost ledger). Every call goes through
# RunsClient._request, the only place ledger retries happen.

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from contentgen.core import config
from contentgen.core.errors import LedgerPermanentError, LedgerTransientError

logger = logging.getLogger("content-generation.runs")


def is_retryable_status(status: int) -> bool:
    # 502/503/504 included
    return 500 <= status <= 599


class RunsClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.RUNS_SERVICE_URL).rstrip("/")
        self.api_key = config.RUNS_SERVICE_API_KEY if api_key is None else api_key
        self.max_retries = config.RUNS_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = config.RUNS_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        attempts = self.max_retries + 1
        last_status: Optional[int] = None
        last_detail = ""

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(1, attempts + 1):
                try:
                    resp = await client.request(method, path, json=json)
                except httpx.TransportError as e:
                    last_status = None
                    last_detail = str(e)
                else:
                    if resp.is_success:
                        return resp.json() if resp.content else {}
                    last_status = resp.status_code
                    last_detail = resp.text[:500]
                    if not is_retryable_status(resp.status_code):
                        raise LedgerPermanentError(method, path, resp.status_code, last_detail)

                if attempt < attempts:
                    retry = attempt
                    delay = self.backoff_delay(retry)
                    logger.warning(
                        f"[runs-client] Retry {retry}/{self.max_retries} for {method} {path} "
                        f"after {last_status or 'network error'} (waiting {delay:.2f}s)"
                    )
                    await asyncio.sleep(delay)

        raise LedgerTransientError(method, path, last_status, last_detail)

    async def create_run(
        self,
        clerk_org_id: str,
        app_id: str,
        service_name: str,
        task_name: str,
        parent_run_id: Optional[str] = None,
        brand_id: Optional[str] = None,
        campaign_id: Optional[str] = None,
        workflow_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "clerkOrgId": clerk_org_id,
            "appId": app_id,
            "serviceName": service_name,
            "taskName": task_name,
        }
        if parent_run_id:
            payload["parentRunId"] = parent_run_id
        if brand_id:
            payload["brandId"] = brand_id
        if campaign_id:
            payload["campaignId"] = campaign_id
        if workflow_name:
            payload["workflowName"] = workflow_name
        return await self._request("POST", "/v1/runs", json=payload)

    async def update_run(self, run_id: str, status: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/v1/runs/{run_id}", json={"status": status})

    async def add_costs(self, run_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._request("POST", f"/v1/runs/{run_id}/costs", json={"items": items})

    async def get_run(self, run_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/runs/{run_id}")


_default_client: Optional[RunsClient] = None


def get_runs_client() -> RunsClient:
    global _default_client
    if _default_client is None:
        _default_client = RunsClient()
    return _default_client
