"""Administrative operations for CardMint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..domain.events import LEDGER_RESET, EventBus
from ..domain.exceptions import CardMintError
from ..domain.fulfillment import FulfillmentListener
from ..domain.ledger import UniquenessLedger
from ..storage.base import AuditStore, PurchaseRecord, WalletStore

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        ledger: UniquenessLedger,
        wallets: WalletStore,
        audit_store: AuditStore,
        event_bus: EventBus,
        *,
        listener: FulfillmentListener | None = None,
        allow_ledger_reset: bool = False,
        audit_logs: bool = True,
    ) -> None:
        self._ledger = ledger
        self._wallets = wallets
        self._audit_store = audit_store
        self._events = event_bus
        self._listener = listener
        self._allow_ledger_reset = allow_ledger_reset
        self._audit_logs = audit_logs

    async def reset_ledger(self, *, actor: str, reason: str | None = None) -> int:
        if not self._allow_ledger_reset:
            raise CardMintError("Ledger reset is disabled by configuration")
        removed = await self._ledger.reset()
        await self._audit("reset_ledger", {"actor": actor, "reason": reason, "removed": removed})
        await self._events.publish(LEDGER_RESET, {"actor": actor, "removed": removed})
        return removed

    async def retry_purchase(self, external_pack_id: str, *, actor: str) -> PurchaseRecord:
        if self._listener is None:
            raise CardMintError("No fulfillment listener configured")
        record = await self._listener.retry_purchase(external_pack_id)
        await self._audit(
            "retry_purchase",
            {"actor": actor, "purchase": str(record.key), "status": record.status.value},
        )
        return record

    async def link_wallet(self, user_id: str, address: str, *, actor: str) -> None:
        await self._wallets.link(user_id, address)
        await self._audit("link_wallet", {"actor": actor, "user_id": user_id, "address": address})

    async def owner_report(self, owner_id: str) -> dict[str, Any]:
        entries = await self._ledger.entries_for_owner(owner_id)
        return {
            "owner_id": owner_id,
            "issued": len(entries),
            "cards": [
                {
                    "key": entry.item_key,
                    "player": entry.name,
                    "season": entry.season,
                    "tier": entry.tier,
                    "issued_at": entry.issued_at.isoformat(),
                }
                for entry in entries
            ],
        }

    async def _audit(self, action: str, payload: dict) -> None:
        logger.info("Admin action %s: %s", action, payload)
        if not self._audit_logs:
            return
        await self._audit_store.add_entry(
            action,
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **payload,
            },
        )
