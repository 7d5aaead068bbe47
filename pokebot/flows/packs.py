"""Trading-card pack shop, pack opening and the opened-card viewer."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..models import Item, Outcome, PagedView, Session
from ..render import Embed, Render
from .base import Flow

RARITY_EMOJI = {
    "common": "⚪",
    "uncommon": "🟢",
    "rare": "🔵",
    "holo_rare": "🟣",
    "ultra_rare": "🟡",
    "secret_rare": "🌈",
    "prism": "🎴",
    "rainbow": "🌈",
    "amazing": "✨",
    "promo": "🎟️",
    "hyper": "🔥",
}

RARITY_COLOUR = {
    "common": 0x95A5A6,
    "uncommon": 0x2ECC71,
    "rare": 0x3498DB,
    "holo_rare": 0x9B59B6,
    "ultra_rare": 0xF1C40F,
    "secret_rare": 0x8E44AD,
    "prism": 0xE67E22,
    "rainbow": 0xF39C12,
    "amazing": 0x00CEC9,
    "promo": 0xE84393,
    "hyper": 0xD35400,
}


def rarity_key(rarity: Optional[str]) -> str:
    return (rarity or "common").lower().replace(" ", "_")


def pack_status(pack: Mapping[str, Any]) -> str:
    if not pack.get("canAfford"):
        return "❌ Not enough points"
    if not pack.get("withinDailyLimit", True):
        return "⏰ Daily limit reached"
    if not pack.get("withinWeeklyLimit", True):
        return "📅 Weekly limit reached"
    return "✅ Available"


def pack_item(pack: Mapping[str, Any]) -> Item:
    purchasable = bool(
        pack.get("canAfford")
        and pack.get("withinDailyLimit", True)
        and pack.get("withinWeeklyLimit", True)
    )
    price = int(pack.get("price", 0))
    return Item(
        key=str(pack["packId"]),
        label=f"Buy {pack.get('name', 'Pack')} ({price:,})",
        description=(
            f"{pack.get('cardCount', '?')} cards • {price:,} points • {pack_status(pack)}"
        ),
        search_fields=(str(pack.get("name", "")),),
        available=1 if purchasable else 0,
        payload=dict(pack),
    )


def card_item(card: Mapping[str, Any], index: int) -> Item:
    images = card.get("images") or {}
    name = str(card.get("name", "Unknown card"))
    rarity = str(card.get("rarity", "Common"))
    return Item(
        key=str(card.get("_id") or card.get("cardId") or index),
        label=name,
        description=f"**{card.get('supertype', 'Card')}** • {rarity}",
        search_fields=(name, rarity, str(card.get("supertype", ""))),
        payload={**card, "image": images.get("large") or images.get("small")},
    )


class PackShopFlow(Flow):
    name = "packs"
    command = "pokepacks"
    title = "🎴 Pokémon TCG Card Packs"
    selection_style = "buttons"

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        data = await backend.list_packs(owner_id, context.get("guild_id"))
        stats = data.get("openingStats") or {}
        context["balance"] = int(data.get("userBalance", 0))
        context["total_openings"] = int(stats.get("totalOpenings", 0))
        context["total_spent"] = int(stats.get("totalSpent", 0))
        return [pack_item(pack) for pack in data.get("packs") or []]

    def empty_message(self, context) -> str:
        return "No card packs are currently available."

    def describe(self, session: Session, view: PagedView) -> List[str]:
        ctx = session.context
        return [
            f"Balance: **{ctx.get('balance', 0):,}** points • "
            f"Openings: **{ctx.get('total_openings', 0)}** • "
            f"Spent: **{ctx.get('total_spent', 0):,}** points"
        ]

    def unavailable_message(self) -> str:
        return "You can't buy that pack right now."

    async def submit(self, backend, session: Session) -> Outcome:
        item = self.selected(session)
        result = await backend.purchase_pack(
            session.owner_user_id, session.context.get("guild_id"), item.key, 1
        )
        pack = item.payload
        return Outcome(
            success=True,
            message=f"You bought **{pack.get('name', 'a pack')}**! Use `/pokeopen` to open it.",
            details={"balance": result.get("newBalance"), "price": pack.get("price")},
        )

    def render_result(self, session: Session, outcome: Outcome) -> Render:
        if not outcome.success:
            return Render(content=f"❌ {outcome.message}")
        fields = [("Price", f"{int(outcome.details.get('price') or 0):,} points")]
        if outcome.details.get("balance") is not None:
            fields.append(("New Balance", f"{int(outcome.details['balance']):,} points"))
        return Render(
            embeds=(
                Embed(
                    title="✅ Pack Purchased!",
                    description=outcome.message,
                    fields=tuple(fields),
                    colour=0x2ECC71,
                ),
            )
        )


class PackOpenFlow(Flow):
    name = "open"
    command = "pokeopen"
    title = "📦 Unopened Packs"
    selection_style = "buttons"

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        data = await backend.opening_stats(owner_id, context.get("guild_id"))
        unopened = [
            opening
            for opening in data.get("recentOpenings") or []
            if not opening.get("cardsObtained")
        ]
        return [
            Item(
                key=str(opening["_id"]),
                label=f"Open {opening.get('packName', 'Pack')}",
                search_fields=(str(opening.get("packName", "")),),
                payload=dict(opening),
            )
            for opening in unopened
        ]

    def empty_message(self, context) -> str:
        return "You don't have any unopened packs. Buy one with `/pokepacks`!"

    def render_pending(self, session: Session) -> Render:
        return Render(content="⏳ Opening your pack…")

    async def submit(self, backend, session: Session) -> Outcome:
        item = self.selected(session)
        result = await backend.open_pack(
            session.owner_user_id, session.context.get("guild_id"), item.key
        )
        cards = list(result.get("cards") or [])
        pack = result.get("pack") or {}
        return Outcome(
            success=True,
            message=f"You opened a **{pack.get('name', item.payload.get('packName', 'pack'))}** "
            f"and found {len(cards)} cards!",
            details={"cards": cards, "total_value": result.get("totalValue")},
        )

    def render_result(self, session: Session, outcome: Outcome) -> Render:
        if not outcome.success:
            return Render(content=f"❌ {outcome.message}")
        breakdown = summarize_rarities(outcome.details.get("cards") or [])
        rarity_text = " ".join(
            f"{RARITY_EMOJI.get(key, '⚪')} {count}" for key, count in sorted(breakdown.items())
        )
        fields = [("📊 Cards by Rarity", rarity_text or "None")]
        if outcome.details.get("total_value") is not None:
            fields.append(("💰 Total Value", f"{int(outcome.details['total_value']):,} points"))
        return Render(
            embeds=(
                Embed(
                    title="🎉 Pack Opened!",
                    description=outcome.message,
                    fields=tuple(fields),
                    colour=0x2ECC71,
                ),
            )
        )

    async def after_resolved(self, engine, session, outcome, message) -> None:
        cards = outcome.details.get("cards") or []
        if not outcome.success or not cards or message is None:
            return
        await engine.start(
            CardViewerFlow.name,
            owner_id=session.owner_user_id,
            message=message.followup(),
            context={"guild_id": session.context.get("guild_id")},
            items=[card_item(card, index) for index, card in enumerate(cards)],
        )


class CardViewerFlow(Flow):
    """Browse-only viewer for freshly opened cards, one per page."""

    name = "cards"
    command = "pokeopen"
    title = "Your cards"
    selection_style = None

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        # Cards are handed over by the opening flow.
        return []

    def page_embed(self, session: Session, view: PagedView) -> Embed:
        if not view.visible_items:
            return super().page_embed(session, view)
        card = view.visible_items[0]
        rarity = rarity_key(card.payload.get("rarity"))
        return Embed(
            title=f"{RARITY_EMOJI.get(rarity, '⚪')} {card.label}",
            description=card.description,
            footer=f"Card {view.current_page + 1} of {view.total_pages}",
            colour=RARITY_COLOUR.get(rarity, 0x95A5A6),
            image_url=card.payload.get("image"),
        )


def summarize_rarities(cards: Sequence[Mapping[str, Any]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for card in cards:
        key = rarity_key(card.get("rarity"))
        counts[key] = counts.get(key, 0) + 1
    return counts


__all__ = [
    "CardViewerFlow",
    "PackOpenFlow",
    "PackShopFlow",
    "RARITY_COLOUR",
    "RARITY_EMOJI",
    "card_item",
    "pack_item",
    "rarity_key",
]
