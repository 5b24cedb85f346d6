"""
Fonepay QR payment watcher.

Two channels report the same terminal event: the gateway's QR WebSocket and
a status poll against our backend. Whichever reaches a terminal status first
wins; the redirect is emitted exactly once and the other channel is cancelled.
"""
import asyncio
import json
import logging

import aiohttp
from django.conf import settings

from core.backend import BackendError

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
CANCELLED = "cancelled"
TIMEOUT = "timeout"

STATUS_COMPLETED = "Completed"
STATUS_FAILED = "Failed"

TOASTS = {
    "QR_VERIFIED": (
        "QR Code Scanned",
        "Your QR code has been scanned. Please complete the payment in your phone app.",
    ),
    "PAYMENT_SUCCESS": ("Payment Successful", "Your payment has been processed successfully."),
    "PAYMENT_FAILED": ("Payment Failed", "The payment was not successful. Please try again."),
}


def parse_gateway_message(raw):
    """
    Gateway frames look like {"transactionStatus": "<json string>"}.
    Returns the inner status dict, or None for frames without one.
    """
    data = json.loads(raw)
    status = data.get("transactionStatus") if isinstance(data, dict) else None
    if not status:
        return None
    if isinstance(status, str):
        status = json.loads(status)
    return status if isinstance(status, dict) else None


class FonepayStatusWatcher:
    def __init__(self, payment_id, websocket_url, check_status, on_event,
                 poll_interval=None, timeout=None, success_url="", cancel_url=""):
        self.payment_id = payment_id
        self.websocket_url = websocket_url
        self.check_status = check_status
        self.on_event = on_event
        self.poll_interval = poll_interval if poll_interval is not None else float(
            getattr(settings, "FONEPAY_POLL_INTERVAL", 5)
        )
        self.timeout = timeout if timeout is not None else float(getattr(settings, "FONEPAY_WATCH_TIMEOUT", 600))
        self.success_url = success_url
        self.cancel_url = cancel_url

        self.outcome = None
        self._done = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    async def run(self):
        self._done = asyncio.Event()
        if self.finished:
            return self.outcome

        tasks = [asyncio.create_task(self._poll())]
        if self.websocket_url:
            tasks.append(asyncio.create_task(self._listen()))

        try:
            await asyncio.wait_for(self._done.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            if self.outcome is None:
                self.outcome = TIMEOUT
                logger.info("Fonepay watch for %s timed out", self.payment_id)
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        return self.outcome

    def stop(self):
        if self.outcome is None:
            self.outcome = CANCELLED
        if self._done is not None:
            self._done.set()

    async def _emit(self, event):
        if self.finished:
            return
        await self.on_event(event)

    async def _finish(self, outcome) -> bool:
        # outcome is claimed before the first await, so a second channel can't redirect too
        if self.finished:
            return False
        self.outcome = outcome
        url = self.success_url if outcome == SUCCESS else self.cancel_url
        logger.info("Fonepay payment %s finished: %s", self.payment_id, outcome)
        try:
            await self.on_event({"type": "REDIRECT", "url": url, "outcome": outcome})
        finally:
            if self._done is not None:
                self._done.set()
        return True

    async def _confirmed_status(self):
        try:
            result = await self.check_status(self.payment_id)
        except BackendError as e:
            logger.warning("Fonepay status check for %s failed: %s", self.payment_id, e)
            return None
        return (result or {}).get("status")

    async def handle_message(self, raw):
        try:
            status = parse_gateway_message(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed Fonepay frame for %s: %s", self.payment_id, e)
            return
        if not status:
            return

        if status.get("qrVerified"):
            await self._emit({"type": "QR_VERIFIED"})

        success = status.get("paymentSuccess")
        if success is True:
            await self._emit({"type": "PAYMENT_SUCCESS"})
            # the gateway's word alone is not enough; confirm against our backend
            if await self._confirmed_status() == STATUS_COMPLETED:
                await self._finish(SUCCESS)
        elif success is False:
            await self._emit({"type": "PAYMENT_FAILED"})
            await self._finish(FAILED)

    async def _listen(self):
        try:
            async with aiohttp.ClientSession() as session:
                async with session.ws_connect(self.websocket_url, heartbeat=30) as ws:
                    logger.info("Fonepay socket open for %s", self.payment_id)
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            await self.handle_message(msg.data)
                        elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
                        if self.finished:
                            break
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # polling keeps running on its own
            logger.warning("Fonepay socket for %s failed: %s", self.payment_id, e)
        else:
            logger.info("Fonepay socket closed for %s", self.payment_id)

    async def _poll(self):
        while not self.finished:
            await asyncio.sleep(self.poll_interval)
            if self.finished:
                break

            status = await self._confirmed_status()
            logger.debug("Fonepay status for %s: %s", self.payment_id, status)
            if status == STATUS_COMPLETED:
                await self._finish(SUCCESS)
            elif status == STATUS_FAILED:
                await self._finish(FAILED)
