from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from perks.models import DEFAULT_COLOR, Cadence, Card, CardPatch, Perk, PerkPatch
from perks.periods import bucket_key
from perks.storage import (
    CARDS_KEY, PERKS_KEY, USAGE_KEY, JsonFileStore, load_cards, load_perks, load_usage
)


logger = logging.getLogger(__name__)

UNKNOWN_CARD = "Unknown"


class IdSource:
    """Time-derived ids, strictly increasing for the life of the process."""

    def __init__(self):
        self._last = 0

    def next_id(self, taken=()) -> str:
        candidate = max(int(time.time() * 1000), self._last + 1)
        while str(candidate) in taken:
            candidate += 1
        self._last = candidate
        return str(candidate)


def _require_name(name: Optional[str], what: str) -> str:
    if name is None or not name.strip():
        raise ValueError(f"{what} name is required")
    return name.strip()


def _require_limit(limit) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValueError("Limit must be a whole number")
    if limit < 1:
        raise ValueError("Limit must be at least 1")
    return limit


def _cadence_value(cadence) -> str:
    return cadence.value if isinstance(cadence, Cadence) else str(cadence)


class Registry:
    def __init__(self, store: JsonFileStore, ids: Optional[IdSource] = None):
        self.store = store
        self.ids = ids or IdSource()
        self.cards: list[Card] = load_cards(store.load(CARDS_KEY, []))
        self.perks: list[Perk] = load_perks(store.load(PERKS_KEY, []))

    def _save_cards(self):
        self.store.save(CARDS_KEY, [c.to_dict() for c in self.cards])

    def _save_perks(self):
        self.store.save(PERKS_KEY, [p.to_dict() for p in self.perks])

    def replace_all(self, cards: list[Card], perks: list[Perk]) -> None:
        self.cards = list(cards)
        self.perks = list(perks)
        self._save_cards()
        self._save_perks()

    # ===== CARDS =====
    def add_card(self, name: str, issuer: str = "", color: str = DEFAULT_COLOR) -> Card:
        card = Card(
            id=self.ids.next_id({c.id for c in self.cards}),
            name=_require_name(name, "Card"),
            issuer=issuer or "",
            color=color or DEFAULT_COLOR,
        )
        self.cards.append(card)
        self._save_cards()
        logger.debug("Added card %s (%s)", card.id, card.name)
        return card

    def get_card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def update_card(self, card_id: str, patch: CardPatch) -> Optional[Card]:
        card = self.get_card(card_id)
        if card is None:
            return None
        if patch.name is not None:
            patch = replace(patch, name=_require_name(patch.name, "Card"))
        patch.apply_to(card)
        self._save_cards()
        return card

    def delete_card(self, card_id: str) -> bool:
        """Remove a card and every perk attached to it. Usage buckets are kept."""
        count = len(self.cards)
        self.cards[:] = [c for c in self.cards if c.id != card_id]
        if len(self.cards) == count:
            return False

        self.perks[:] = [p for p in self.perks if p.card_id != card_id]
        self._save_cards()
        self._save_perks()
        logger.debug("Deleted card %s and its perks", card_id)
        return True

    # ===== PERKS =====
    def add_perk(
            self,
            card_id: str,
            name: str,
            description: str = "",
            limit: int = 1,
            cadence: Cadence | str = Cadence.MONTHLY,
    ) -> Perk:
        if self.get_card(card_id) is None:
            raise ValueError(f"Card not found: {card_id}")

        perk = Perk(
            id=self.ids.next_id({p.id for p in self.perks}),
            card_id=card_id,
            name=_require_name(name, "Perk"),
            description=description or "",
            limit=_require_limit(limit),
            cadence=_cadence_value(cadence),
        )
        self.perks.append(perk)
        self._save_perks()
        logger.debug("Added perk %s (%s) to card %s", perk.id, perk.name, card_id)
        return perk

    def get_perk(self, perk_id: str) -> Optional[Perk]:
        for perk in self.perks:
            if perk.id == perk_id:
                return perk
        return None

    def update_perk(self, perk_id: str, patch: PerkPatch) -> Optional[Perk]:
        perk = self.get_perk(perk_id)
        if perk is None:
            return None
        if patch.card_id is not None and self.get_card(patch.card_id) is None:
            raise ValueError(f"Card not found: {patch.card_id}")
        if patch.name is not None:
            patch = replace(patch, name=_require_name(patch.name, "Perk"))
        if patch.limit is not None:
            patch = replace(patch, limit=_require_limit(patch.limit))
        patch.apply_to(perk)
        self._save_perks()
        return perk

    def delete_perk(self, perk_id: str) -> bool:
        count = len(self.perks)
        self.perks[:] = [p for p in self.perks if p.id != perk_id]
        if len(self.perks) == count:
            return False
        self._save_perks()
        return True

    def perks_for_card(self, card_id: str) -> list[Perk]:
        return [p for p in self.perks if p.card_id == card_id]

    def card_label(self, perk: Perk) -> str:
        card = self.get_card(perk.card_id)
        return card.name if card else UNKNOWN_CARD


class UsageLedger:
    """Redemption counts per (perk, reset period) bucket."""

    def __init__(self, store: JsonFileStore, registry: Registry):
        self.store = store
        self.registry = registry
        self.counts: dict[str, int] = load_usage(store.load(USAGE_KEY, {}))

    def _save(self):
        self.store.save(USAGE_KEY, self.counts)

    def replace_all(self, counts: dict[str, int]) -> None:
        self.counts = dict(counts)
        self._save()

    def key_for(self, perk_id: str, year: int, month: int) -> str:
        perk = self.registry.get_perk(perk_id)
        return bucket_key(perk_id, perk.cadence if perk else None, year, month)

    def get(self, perk_id: str, year: int, month: int) -> int:
        return self.counts.get(self.key_for(perk_id, year, month), 0)

    def increment(self, perk_id: str, year: int, month: int) -> int:
        key = self.key_for(perk_id, year, month)
        self.counts[key] = self.counts.get(key, 0) + 1
        self._save()
        return self.counts[key]

    def decrement(self, perk_id: str, year: int, month: int) -> int:
        key = self.key_for(perk_id, year, month)
        count = self.counts.get(key, 0)
        if count > 0:
            self.counts[key] = count - 1
            self._save()
        return self.counts.get(key, 0)

    def reset(self, perk_id: str, year: int, month: int) -> None:
        key = self.key_for(perk_id, year, month)
        if self.counts.pop(key, None) is not None:
            self._save()

    def orphaned_keys(self) -> list[str]:
        perk_ids = {p.id for p in self.registry.perks}
        return [
            key for key in self.counts
            if not any(key.startswith(f"{pid}-") for pid in perk_ids)
        ]


# ===== CHECKLIST =====
@dataclass
class ChecklistItem:
    perk: Perk
    usage: int
    limit: int
    is_completed: bool


@dataclass
class CardChecklist:
    card: Card
    items: list[ChecklistItem] = field(default_factory=list)


def build_checklist(registry: Registry, ledger: UsageLedger, year: int, month: int) -> list[CardChecklist]:
    """
    Per-card checklist for one calendar month.

    Every perk shows up in every month; the cadence only decides which bucket
    its usage is counted in. Perks whose card is gone are left out.
    """
    by_card: dict[str, list[Perk]] = {}
    for perk in registry.perks:
        by_card.setdefault(perk.card_id, []).append(perk)

    checklist = []
    for card_id, perks in by_card.items():
        card = registry.get_card(card_id)
        if card is None:
            continue

        group = CardChecklist(card)
        for perk in perks:
            usage = ledger.get(perk.id, year, month)
            group.items.append(ChecklistItem(
                perk=perk,
                usage=usage,
                limit=perk.limit,
                is_completed=usage >= perk.limit,
            ))
        checklist.append(group)

    return checklist


def toggle_perk_usage(
        registry: Registry,
        ledger: UsageLedger,
        perk_id: str,
        year: int,
        month: int,
        checked: bool,
) -> Optional[int]:
    perk = registry.get_perk(perk_id)
    if perk is None:
        return None

    usage = ledger.get(perk_id, year, month)
    if checked and usage < perk.limit:
        usage = ledger.increment(perk_id, year, month)
    elif not checked and usage > 0:
        usage = ledger.decrement(perk_id, year, month)
    return usage
