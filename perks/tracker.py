from __future__ import annotations
import logging
from typing import Optional

from perks.logic import (
    Registry, UsageLedger, CardChecklist, build_checklist, toggle_perk_usage
)
from perks.models import Card, CardPatch, Perk, PerkPatch
from perks.storage import AUTO_SYNC_KEY, JsonFileStore, make_snapshot, parse_snapshot
from perks.sync import DriveSync, SyncError


logger = logging.getLogger(__name__)


class PerkTracker:
    """
    Application controller: owns the store, the card/perk registry and the
    usage ledger, and optionally a Drive sync. Every mutation goes through
    here so auto-sync can follow it.
    """

    def __init__(self, store: JsonFileStore, sync: Optional[DriveSync] = None):
        self.store = store
        self.registry = Registry(store)
        self.ledger = UsageLedger(store, self.registry)
        self.sync = sync
        self.auto_sync = bool(store.load(AUTO_SYNC_KEY, False))

    def _changed(self):
        if not (self.auto_sync and self.sync):
            return
        try:
            self.sync.push(self.export_snapshot())
        except SyncError as e:
            # local state stays authoritative
            logger.error("Auto-sync failed: %s", e)

    # ===== CARDS & PERKS =====
    @property
    def cards(self) -> list[Card]:
        return self.registry.cards

    @property
    def perks(self) -> list[Perk]:
        return self.registry.perks

    def add_card(self, name: str, issuer: str = "", color: Optional[str] = None) -> Card:
        card = self.registry.add_card(name, issuer, color)
        self._changed()
        return card

    def update_card(self, card_id: str, patch: CardPatch) -> Optional[Card]:
        card = self.registry.update_card(card_id, patch)
        if card is not None:
            self._changed()
        return card

    def delete_card(self, card_id: str) -> bool:
        deleted = self.registry.delete_card(card_id)
        if deleted:
            self._changed()
        return deleted

    def add_perk(self, card_id: str, name: str, description: str = "", limit: int = 1, cadence="monthly") -> Perk:
        perk = self.registry.add_perk(card_id, name, description, limit, cadence)
        self._changed()
        return perk

    def update_perk(self, perk_id: str, patch: PerkPatch) -> Optional[Perk]:
        perk = self.registry.update_perk(perk_id, patch)
        if perk is not None:
            self._changed()
        return perk

    def delete_perk(self, perk_id: str) -> bool:
        deleted = self.registry.delete_perk(perk_id)
        if deleted:
            self._changed()
        return deleted

    # ===== USAGE =====
    def checklist(self, year: int, month: int) -> list[CardChecklist]:
        return build_checklist(self.registry, self.ledger, year, month)

    def toggle(self, perk_id: str, year: int, month: int, checked: bool) -> Optional[int]:
        before = self.ledger.get(perk_id, year, month)
        usage = toggle_perk_usage(self.registry, self.ledger, perk_id, year, month, checked)
        if usage is not None and usage != before:
            self._changed()
        return usage

    def reset_usage(self, perk_id: str, year: int, month: int) -> bool:
        if self.registry.get_perk(perk_id) is None:
            return False
        self.ledger.reset(perk_id, year, month)
        self._changed()
        return True

    # ===== DATA MANAGEMENT =====
    def export_snapshot(self) -> dict:
        return make_snapshot(self.registry.cards, self.registry.perks, self.ledger.counts)

    def import_snapshot(self, data) -> None:
        """Replace all cards, perks and usage. Raises SnapshotFormatError untouched."""
        cards, perks, usage = parse_snapshot(data)
        self.registry.replace_all(cards, perks)
        self.ledger.replace_all(usage)
        logger.info("Imported %d cards, %d perks, %d usage buckets", len(cards), len(perks), len(usage))
        self._changed()

    def clear_all(self) -> None:
        self.store.clear()
        self.registry.cards.clear()
        self.registry.perks.clear()
        self.ledger.counts.clear()
        self.auto_sync = False
        if self.sync:
            self.sync.forget()

    def data_stats(self) -> dict:
        return {
            "cards": len(self.registry.cards),
            "perks": len(self.registry.perks),
            "usage": len(self.ledger.counts),
            "orphaned": len(self.ledger.orphaned_keys()),
        }

    # ===== SYNC =====
    def connect(self, sync: DriveSync) -> None:
        self.sync = sync

    def disconnect(self) -> None:
        if self.sync:
            self.sync.forget()
        self.sync = None
        self.set_auto_sync(False)

    def set_auto_sync(self, enabled: bool) -> None:
        self.auto_sync = enabled
        self.store.save(AUTO_SYNC_KEY, enabled)

    def push(self) -> str:
        if self.sync is None:
            raise SyncError("Not connected to Google Drive")
        return self.sync.push(self.export_snapshot())

    def pull(self) -> Optional[dict]:
        """Fetch the remote snapshot without applying it; None if there is no backup."""
        if self.sync is None:
            raise SyncError("Not connected to Google Drive")
        data = self.sync.pull()
        if data is not None:
            parse_snapshot(data)
        return data
