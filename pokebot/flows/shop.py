"""Stardust progression shop gated by level, balance and per-item cooldowns."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional, Sequence

from ..models import Item, Outcome, PagedView, Session
from ..render import Embed
from .base import Flow


@dataclass(frozen=True)
class ShopEntry:
    key: str
    name: str
    level: int
    price: int
    effect: str
    cooldown_field: str


SHOP_ITEMS = (
    ShopEntry("rare", "5 Rare Poké Balls", 5, 250, "1.25x catch rate", "poke_rareball_ts"),
    ShopEntry("ultra", "3 Ultra Poké Balls", 10, 225, "1.5x catch rate", "poke_ultraball_ts"),
    ShopEntry("xp", "XP Booster", 15, 100, "2x XP (1 battle/catch)", "poke_xp_booster_ts"),
    ShopEntry("evolution", "Evolver's Ring", 20, 200, "Evolve with duplicates", "poke_daily_ring_ts"),
    ShopEntry("hp_up", "HP Up", 25, 150, "+10 HP EVs (max 252)", "poke_hp_up_ts"),
    ShopEntry("protein", "Protein", 25, 150, "+10 Attack EVs (max 252)", "poke_protein_ts"),
    ShopEntry("iron", "Iron", 25, 150, "+10 Defense EVs (max 252)", "poke_iron_ts"),
    ShopEntry("calcium", "Calcium", 25, 150, "+10 Sp. Attack EVs (max 252)", "poke_calcium_ts"),
    ShopEntry("zinc", "Zinc", 25, 150, "+10 Sp. Defense EVs (max 252)", "poke_zinc_ts"),
    ShopEntry("carbos", "Carbos", 25, 150, "+10 Speed EVs (max 252)", "poke_carbos_ts"),
    ShopEntry("rare_candy", "Rare Candy", 30, 500, "+4 EVs to all stats (max 252 each)", "poke_rare_candy_ts"),
    ShopEntry("master_ball", "Master Ball", 35, 1000, "+8 EVs to all stats (max 252 each)", "poke_master_ball_ts"),
    ShopEntry("reset_bag", "Reset Bag", 20, 300, "Reset all EVs to 0", "poke_reset_bag_ts"),
)

_SPECIAL_COOLDOWNS = {"rare_candy": 12, "master_ball": 24, "reset_bag": 48}


def cooldown_hours(key: str) -> int:
    """Balls, boosters and rings reset every 12h; vitamins every 6h."""

    if "_" not in key:
        return 12
    return _SPECIAL_COOLDOWNS.get(key, 6)


def next_level_xp(level: int) -> int:
    """Cumulative XP needed to reach ``level``."""

    return sum(100 * step for step in range(2, level + 1))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        stamp = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)


def cooldown_remaining(
    entry: ShopEntry, user: Mapping[str, Any], now: Optional[datetime] = None
) -> Optional[timedelta]:
    last = _parse_timestamp(user.get(entry.cooldown_field))
    if last is None:
        return None
    now = now or datetime.now(timezone.utc)
    remaining = last + timedelta(hours=cooldown_hours(entry.key)) - now
    return remaining if remaining > timedelta(0) else None


def shop_item(entry: ShopEntry, user: Mapping[str, Any], now: Optional[datetime] = None) -> Item:
    level = int(user.get("poke_level") or 1)
    stardust = int(user.get("poke_stardust") or 0)
    unlocked = level >= entry.level
    remaining = cooldown_remaining(entry, user, now)
    if not unlocked:
        status = "🔒 Locked"
    elif remaining is not None:
        hours, rest = divmod(int(remaining.total_seconds()), 3600)
        status = f"Cooldown: {hours}h {rest // 60}m left"
    elif stardust < entry.price:
        status = "❌ Not enough Stardust"
    else:
        status = "Available!"
    return Item(
        key=entry.key,
        label=f"Buy {entry.name}",
        description=f"(Lvl {entry.level}+) {entry.price} Stardust • {entry.effect} • {status}",
        search_fields=(entry.name, entry.effect),
        available=1 if unlocked and remaining is None and stardust >= entry.price else 0,
        payload={"name": entry.name, "price": entry.price},
    )


class ItemShopFlow(Flow):
    name = "shop"
    command = "pokeshop"
    title = "🛒 Poké Shop"
    selection_style = "buttons"

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        user = await backend.get_user(owner_id, context.get("guild_id"))
        level = int(user.get("poke_level") or 1)
        xp = int(user.get("poke_xp") or 0)
        context["level"] = level
        context["stardust"] = int(user.get("poke_stardust") or 0)
        context["xp_this_level"] = xp - next_level_xp(level)
        context["xp_needed"] = next_level_xp(level + 1) - next_level_xp(level)
        return [shop_item(entry, user) for entry in SHOP_ITEMS]

    def describe(self, session: Session, view: PagedView) -> List[str]:
        ctx = session.context
        return [
            f"Level **{ctx.get('level', 1)}** • Stardust **{ctx.get('stardust', 0):,}** • "
            f"XP to level up {ctx.get('xp_this_level', 0)} / {ctx.get('xp_needed', 0)}"
        ]

    def page_embed(self, session: Session, view: PagedView) -> Embed:
        embed = super().page_embed(session, view)
        return Embed(
            title=embed.title,
            description="Buy special items with Stardust!\n\n" + embed.description,
            footer=embed.footer,
            colour=embed.colour,
        )

    def unavailable_message(self) -> str:
        return "That item is locked, on cooldown or too expensive right now."

    async def submit(self, backend, session: Session) -> Outcome:
        item = self.selected(session)
        result = await backend.buy_shop_item(
            session.owner_user_id, session.context.get("guild_id"), item.key
        )
        return Outcome(
            success=True,
            message=str(result.get("message") or f"You bought {item.payload.get('name', item.key)}!"),
            details={"item": item.key},
        )


__all__ = [
    "ItemShopFlow",
    "SHOP_ITEMS",
    "ShopEntry",
    "cooldown_hours",
    "cooldown_remaining",
    "next_level_xp",
    "shop_item",
]
