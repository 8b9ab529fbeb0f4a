from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


DEFAULT_COLOR = "#3b82f6"


class Cadence(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi-annually"
    ANNUALLY = "annually"

    @classmethod
    def parse(cls, value) -> Optional[Cadence]:
        """Return the matching cadence, or None for anything unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Card:
    id: str
    name: str
    issuer: str = ""
    color: str = DEFAULT_COLOR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "issuer": self.issuer,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Card:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            issuer=data.get("issuer") or "",
            color=data.get("color") or DEFAULT_COLOR,
        )


@dataclass
class Perk:
    id: str
    card_id: str
    name: str
    description: str = ""
    limit: int = 1
    # raw value, so unknown cadences survive a save/load round trip
    cadence: str = Cadence.MONTHLY.value

    @property
    def cadence_kind(self) -> Optional[Cadence]:
        return Cadence.parse(self.cadence)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cardId": self.card_id,
            "name": self.name,
            "description": self.description,
            "limit": self.limit,
            "cadence": self.cadence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Perk:
        cadence = data.get("cadence")
        if isinstance(cadence, Cadence):
            cadence = cadence.value
        return cls(
            id=str(data["id"]),
            card_id=str(data["cardId"]),
            name=str(data["name"]),
            description=data.get("description") or "",
            limit=max(1, int(data.get("limit") or 1)),
            cadence=cadence or "",
        )


@dataclass
class CardPatch:
    """Fields of a Card a caller may change. None means leave as is."""
    name: Optional[str] = None
    issuer: Optional[str] = None
    color: Optional[str] = None

    def apply_to(self, card: Card) -> Card:
        if self.name is not None:
            card.name = self.name
        if self.issuer is not None:
            card.issuer = self.issuer
        if self.color is not None:
            card.color = self.color
        return card


@dataclass
class PerkPatch:
    """Fields of a Perk a caller may change. None means leave as is."""
    card_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    limit: Optional[int] = None
    cadence: Optional[str] = None

    def apply_to(self, perk: Perk) -> Perk:
        if self.card_id is not None:
            perk.card_id = self.card_id
        if self.name is not None:
            perk.name = self.name
        if self.description is not None:
            perk.description = self.description
        if self.limit is not None:
            perk.limit = self.limit
        if self.cadence is not None:
            perk.cadence = self.cadence.value if isinstance(self.cadence, Cadence) else self.cadence
        return perk
