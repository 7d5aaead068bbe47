"""Read-only browsers: the Pokédex and the trading-card collection."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Sequence

from ..config import FlowTiming
from ..models import Item, PagedView, Session
from .base import Flow
from .packs import RARITY_EMOJI, rarity_key

RARITY_CATEGORIES = (
    "common",
    "uncommon",
    "rare",
    "holo_rare",
    "ultra_rare",
    "secret_rare",
    "prism",
    "rainbow",
    "amazing",
    "promo",
    "hyper",
)

SUPERTYPES = ("Pokémon", "Trainer", "Energy")


def _caught_stamp(value: Any) -> str:
    if not value:
        return "unknown"
    try:
        stamp = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return "unknown"
    return f"<t:{int(stamp.timestamp())}:d>"


def pokedex_item(entry: Mapping[str, Any]) -> Item:
    name = str(entry.get("name", "unknown"))
    display = name[:1].upper() + name[1:]
    shiny = " ✨" if entry.get("isShiny") else ""
    number = int(entry.get("pokemonId", 0))
    return Item(
        key=f"{number}_{str(bool(entry.get('isShiny'))).lower()}",
        label=f"#{number:03d} {display}{shiny} x{entry.get('count') or 1}",
        description=f"Caught: {_caught_stamp(entry.get('caughtAt'))}",
        search_fields=(name, str(number)),
        available=0,
        payload=dict(entry),
    )


def collection_item(card: Mapping[str, Any], index: int) -> Item:
    name = str(card.get("name", "Unknown card"))
    rarity = str(card.get("rarity", "Common"))
    emoji = RARITY_EMOJI.get(rarity_key(rarity), "⚪")
    value = int(card.get("estimatedValue") or 0)
    return Item(
        key=str(card.get("_id") or index),
        label=f"{emoji} {name}",
        description=(
            f"{card.get('supertype', 'Card')} • {rarity} • x{card.get('count', 1)} • {value:,} points"
        ),
        search_fields=(name, rarity, str(card.get("supertype", "")), str((card.get("set") or {}).get("name", ""))),
        available=0,
        payload=dict(card),
    )


class PokedexFlow(Flow):
    name = "pokedex"
    command = "pokedex"
    title = "Pokédex"
    selection_style = None
    searchable = True

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        data = await backend.get_pokedex(owner_id, context.get("guild_id"))
        return [pokedex_item(entry) for entry in data.get("pokedex") or []]

    def empty_message(self, context) -> str:
        return "You have not caught any Pokémon yet!"

    def describe(self, session: Session, view: PagedView) -> List[str]:
        return [f"Total caught: {len(session.items)}"]


class CollectionFlow(Flow):
    """Fetches up to ``collection_limit`` cards once and pages locally."""

    name = "collection"
    command = "pokecollection"
    title = "📚 Card Collection"
    selection_style = None
    searchable = True

    def __init__(self, timing: FlowTiming, limit: int = 500) -> None:
        super().__init__(timing)
        self.limit = limit

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        data = await backend.list_cards(
            owner_id,
            context.get("guild_id"),
            search=context.get("search"),
            rarity_category=context.get("rarity"),
            supertype=context.get("supertype"),
            limit=self.limit,
        )
        pagination = data.get("pagination") or {}
        context["total_cards"] = int(pagination.get("totalCards") or len(data.get("cards") or []))
        return [collection_item(card, index) for index, card in enumerate(data.get("cards") or [])]

    def empty_message(self, context) -> str:
        return (
            "You don't have any cards in your collection yet! "
            "Use `/pokepacks` to buy some card packs and start your collection!"
        )

    def describe(self, session: Session, view: PagedView) -> List[str]:
        lines = []
        total = session.context.get("total_cards", len(session.items))
        if total > len(session.items):
            lines.append(f"Showing your first {len(session.items)} of {total} cards.")
        filters = [
            f"{label}: {session.context[key]}"
            for key, label in (("search", "search"), ("rarity", "rarity"), ("supertype", "type"))
            if session.context.get(key)
        ]
        if filters:
            lines.append("Filters • " + ", ".join(filters))
        return lines


__all__ = [
    "CollectionFlow",
    "PokedexFlow",
    "RARITY_CATEGORIES",
    "SUPERTYPES",
    "collection_item",
    "pokedex_item",
]
