"""Service container shared by both mock provider apps."""

from typing import Optional

import httpx

from mockpay.services.control import ControlPlane
from mockpay.services.ledger import TransactionLedger
from mockpay.services.webhook_sender import WebhookSender
from mockpay.shared.config import MockpayConfig
from mockpay.shared.file_store import CollectionStore
from mockpay.shared.log_stream import CollectionLogHandler, LogBroadcaster


class Services:

    def __init__(self, config: MockpayConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.store = CollectionStore(config.data_dir, lock_timeout=config.store_lock_timeout_s)
        self.control = ControlPlane(self.store, config)
        self.ledger = TransactionLedger(self.store, self.control)
        self.webhooks = WebhookSender(self.store, self.control, config, transport=transport)
        self.log_broadcaster = LogBroadcaster()
        self.log_handler = CollectionLogHandler(self.store.logs, self.log_broadcaster)
