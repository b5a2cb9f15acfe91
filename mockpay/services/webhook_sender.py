"""Webhook delivery engine - applies the delay/drop/duplicate/retry policy and
records every attempt in the ``webhooks`` collection."""

import asyncio
import json
import logging
from typing import Optional

import httpx
from starlette.concurrency import run_in_threadpool

from mockpay.services.control import ControlPlane
from mockpay.shared.config import MockpayConfig
from mockpay.shared.file_store import CollectionStore, utc_now
from mockpay.shared.models import DeliveryStatus, Webhook, WebhookPolicy
from mockpay.shared.request_id import outbound_headers

logger = logging.getLogger("mockpay.webhook")


class WebhookSender:

    def __init__(
        self,
        store: CollectionStore,
        control: ControlPlane,
        config: MockpayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.records = store.webhooks
        self.control = control
        self.config = config
        # Tests swap in httpx.MockTransport here
        self.transport = transport

    async def _post(self, url: str, payload: dict) -> bool:
        async with httpx.AsyncClient(
            transport=self.transport, timeout=self.config.webhook_timeout_s
        ) as client:
            resp = await client.post(url, content=json.dumps(payload), headers=outbound_headers())
        if not resp.is_success:
            logger.warning(f"Webhook target {url} returned {resp.status_code}")
        return resp.is_success

    async def _attempt(self, record_id: str, webhook: Webhook,
                       policy: WebhookPolicy, attempt: int) -> bool:
        await asyncio.sleep(policy.delay_ms / 1000.0)
        try:
            ok = await self._post(webhook.url, webhook.payload)
        except Exception as e:
            logger.error(f"Webhook error to {webhook.url!r} (attempt {attempt}): {e}")
            ok = False

        await run_in_threadpool(self.records.update_by_id, record_id, {
            "status": (DeliveryStatus.SENT if ok else DeliveryStatus.FAILED).value,
            "attempts": attempt,
            "last_attempt_at": utc_now(),
        })
        if ok:
            logger.info(f"Webhook {webhook.event} sent to {webhook.url} (attempt {attempt})")
        return ok

    async def send_webhook(self, webhook: Webhook) -> dict:
        """Deliver ``webhook`` under the active policy and return the final
        delivery record.

        Order of events: delay, first attempt, an optional duplicate of it,
        then retries, but only when the first attempt failed.
        """
        policy = await run_in_threadpool(self.control.get_webhook_config)
        await run_in_threadpool(self.control.set_last_webhook, webhook)
        base = {
            "provider": webhook.provider.value,
            "event": webhook.event,
            "url": webhook.url,
            "payload": json.dumps(webhook.payload, default=str),
        }

        if policy.drop:
            record = await run_in_threadpool(self.records.add, {
                **base,
                "status": DeliveryStatus.DROPPED.value,
                "attempts": 0,
                "last_attempt_at": utc_now(),
            })
            logger.warning(f"Webhook dropped for {webhook.provider.value} {webhook.event}")
            return record

        record = await run_in_threadpool(self.records.add, {
            **base,
            "status": DeliveryStatus.PENDING.value,
            "attempts": 0,
            "last_attempt_at": None,
        })

        attempts = 1
        first = await self._attempt(record["id"], webhook, policy, attempts)

        if policy.duplicate:
            attempts += 1
            logger.info(f"Sending duplicate webhook: {webhook.event}")
            await self._attempt(record["id"], webhook, policy, attempts)

        if not first and policy.retry_count > 0:
            for _ in range(policy.retry_count):
                await asyncio.sleep(policy.retry_delay_ms / 1000.0)
                attempts += 1
                if await self._attempt(record["id"], webhook, policy, attempts):
                    break

        return await run_in_threadpool(self.records.get_by_id, record["id"]) or record

    async def dispatch(self, webhook: Webhook) -> None:
        """Background entry point; nothing raised here reaches the request
        that triggered the webhook."""
        try:
            await self.send_webhook(webhook)
        except Exception as e:
            logger.error(f"Webhook dispatch for {webhook.event} aborted: {e}")

    def load_last_webhook(self) -> Optional[Webhook]:
        last = self.control.get_last_webhook()
        if last is None:
            return None
        if not last.url and self.config.default_webhook_url:
            return last.model_copy(update={"url": self.config.default_webhook_url})
        return last

    async def resend_last_webhook(self) -> bool:
        last = await run_in_threadpool(self.load_last_webhook)
        if last is None:
            logger.info("No webhook to resend")
            return False
        logger.info(f"Resending {last.provider.value} {last.event} to {last.url}")
        await self.send_webhook(last)
        return True

    def list_deliveries(self, limit: int = 50, **filters) -> list[dict]:
        records = self.records.find(**filters)
        records.reverse()  # newest first
        return records[:limit]
