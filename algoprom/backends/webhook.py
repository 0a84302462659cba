"""Webhook actioner — POSTs the failed check's output to an HTTP endpoint.

Works with anything that accepts a JSON body (Slack-style relays,
Alertmanager-compatible receivers, chat bridges).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from algoprom.backends.base import Actioner
from algoprom.checks.output import Output
from algoprom.engine.context import RunContext

logger = logging.getLogger(__name__)

_MAX_BODY = 2000


class WebhookActioner(Actioner):
    """Sends ``{check, action, params, check_output}`` to ``url``.

    ``params["url"]`` overrides the configured URL for a single action.
    """

    backend_type = "webhook"

    def __init__(
        self,
        url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.headers = {str(k): str(v) for k, v in (headers or {}).items()}
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> WebhookActioner:
        return cls(
            url=settings.get("url", ""),
            headers=settings.get("headers") or {},
            timeout=float(settings.get("timeout", 10.0)),
        )

    async def act(
        self,
        ctx: RunContext,
        action: str,
        check_output: str,
        params: dict[str, str],
        working_dir: Path,
    ) -> Output:
        out = Output()
        url = params.get("url") or self.url
        if not url:
            return out.finish(error="webhook url not configured")

        payload = {
            "check": ctx.check,
            "action": action,
            "params": params,
            "check_output": check_output,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning("Webhook %s for %s failed: %s", action, ctx.check, e)
            return out.finish(error=f"webhook request failed: {type(e).__name__}: {e}")

        body = resp.text[:_MAX_BODY]
        if 200 <= resp.status_code < 300:
            return out.finish(rc=0, combined_out=body)

        logger.warning("Webhook %s returned %d: %s", action, resp.status_code, body[:200])
        return out.finish(rc=1, combined_out=body, error=f"webhook returned HTTP {resp.status_code}")
