import asyncio
import logging
from urllib.parse import urlencode

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.urls import reverse

from . import services
from .fonepay import FonepayStatusWatcher, TOASTS, CANCELLED
from .sessions import FONEPAY_SESSION_KEY

logger = logging.getLogger(__name__)


class FonepayPaymentConsumer(AsyncJsonWebsocketConsumer):
    """
    Browser side of the Fonepay QR modal.
    Joins only for a payment this session started, then relays watcher
    events (toasts and the single redirect) to the page.
    """
    async def connect(self):
        self.payment_id = str(self.scope["url_route"]["kwargs"]["payment_id"])
        self.watcher = None
        self.watch_task = None

        info = await self._load_payment(self.payment_id)
        if not info:
            await self.close()
            return

        await self.accept()

        token = info.get("token")
        success_url = reverse("payment_success") + "?" + urlencode({"paymentId": self.payment_id})
        cancel_url = reverse("payment_cancel") + "?" + urlencode({"paymentId": self.payment_id, "status": "Failed"})

        async def check_status(payment_id):
            return await sync_to_async(services.check_fonepay_status)(payment_id, token=token)

        self.watcher = FonepayStatusWatcher(
            payment_id=self.payment_id,
            websocket_url=info.get("webSocketUrl"),
            check_status=check_status,
            on_event=self.send_event,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        self.watch_task = asyncio.create_task(self._watch())

    async def disconnect(self, close_code):
        if self.watcher:
            self.watcher.stop()
        if self.watch_task and not self.watch_task.done():
            self.watch_task.cancel()

    async def receive_json(self, content, **kwargs):
        if (content.get("type") or "").upper() == "CANCEL" and self.watcher:
            self.watcher.stop()

    async def send_event(self, event):
        data = dict(event)
        toast = TOASTS.get(event.get("type"))
        if toast:
            data["title"], data["description"] = toast
        await self.send_json(data)

    async def _watch(self):
        outcome = await self.watcher.run()
        if outcome != CANCELLED:
            await self.close()

    # ---------- session helpers ----------
    @database_sync_to_async
    def _load_payment(self, payment_id):
        session = self.scope.get("session")
        if session is None:
            return None
        return (session.get(FONEPAY_SESSION_KEY) or {}).get(payment_id)

