"""Sell duplicate Pokémon for stardust."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

from ..errors import BackendError, IllegalTransition
from ..models import Item, Outcome, PagedView, Session
from ..render import Embed, Render
from .base import Flow

logger = logging.getLogger(__name__)


def _display_name(entry: Mapping[str, Any]) -> str:
    name = str(entry.get("name", "Unknown"))
    return f"{name} ✨" if entry.get("isShiny") else name


def duplicate_item(entry: Mapping[str, Any]) -> Item:
    """Build a browsable item from one preview row."""

    name = _display_name(entry)
    dust = int(entry.get("dustYield", 0))
    return Item(
        key=f"{entry['pokemonId']}_{str(bool(entry.get('isShiny'))).lower()}",
        label=f"{name} x{entry.get('count', 0)}",
        description=f"Sellable: {entry.get('sellableCount', 0)} | Value: {dust:,} dust each",
        search_fields=(str(entry.get("name", "")),),
        available=int(entry.get("sellableCount", 0)),
        payload=dict(entry),
    )


class SellDuplicatesFlow(Flow):
    name = "sell_duplicates"
    command = "pokesellduplicates"
    title = "💰 Sell Duplicate Pokémon"
    colour = 0xF1C40F
    selection_style = "menu"
    searchable = True
    bulk_label = "Sell all"
    placeholder = "Select a Pokémon to sell"
    quantity_title = "Sell"

    async def load_items(self, backend, owner_id, context) -> Sequence[Item]:
        preview = await backend.sell_duplicates_preview(owner_id, context.get("guild_id"))
        context["total_value"] = int(preview.get("totalValue", 0))
        return [duplicate_item(entry) for entry in preview.get("duplicates") or []]

    def empty_message(self, context) -> str:
        return "You don't have any duplicate Pokémon to sell!"

    def describe(self, session: Session, view: PagedView) -> List[str]:
        total = session.context.get("total_value", 0)
        return [
            f"You have **{len(session.items)}** types of duplicate Pokémon worth "
            f"**{total:,}** stardust total!",
            "Select a Pokémon from the menu below, then enter the quantity you want to sell.",
        ]

    def requires_quantity(self, item: Item) -> bool:
        return True

    def render_pending(self, session: Session) -> Render:
        if session.bulk:
            return Render(content=f"⏳ Selling {session.quantity} duplicate Pokémon…")
        return Render(content=f"⏳ Selling {session.quantity}x {self.selected(session).label}…")

    async def _sell(self, backend, session: Session, item: Item, quantity: int) -> Dict[str, Any]:
        return await backend.sell_duplicates(
            session.owner_user_id,
            session.context.get("guild_id"),
            pokemon_id=item.payload["pokemonId"],
            is_shiny=bool(item.payload.get("isShiny")),
            quantity=quantity,
        )

    async def submit(self, backend, session: Session) -> Outcome:
        item = self.selected(session)
        if session.quantity is None:
            raise IllegalTransition("No quantity has been confirmed", session.session_id)
        result = await self._sell(backend, session, item, session.quantity)
        sold = result.get("soldPokemon") or {}
        dust = int(sold.get("totalDust", 0))
        return Outcome(
            success=True,
            message=(
                f"You sold **{session.quantity}x {_display_name(item.payload)}** "
                f"for **{dust:,}** stardust!"
            ),
            details={
                "dust": dust,
                "balance": result.get("newStardustBalance"),
                "quantity": session.quantity,
            },
            completed=[{"key": item.key, "quantity": session.quantity, "dust": dust}],
        )

    async def submit_bulk(self, backend, session: Session) -> Outcome:
        """Sell every group in turn, stopping at the first failure.

        The backend has no batch endpoint, so earlier legs stay sold when a
        later one fails; the outcome lists what was sold, what failed and what
        was never attempted.
        """

        outcome = Outcome(success=True, message="")
        pending = [item for item in session.items if item.actionable]
        total_dust = 0
        sold_count = 0
        balance = None
        for index, item in enumerate(pending):
            try:
                result = await self._sell(backend, session, item, item.available)
            except BackendError as exc:
                logger.warning(
                    "Bulk sale for %s stopped at %s: %s", session.owner_user_id, item.key, exc
                )
                outcome.failed = {"key": item.key, "label": item.label, "message": exc.message}
                outcome.skipped = [{"key": rest.key, "label": rest.label} for rest in pending[index + 1:]]
                break
            dust = int((result.get("soldPokemon") or {}).get("totalDust", 0))
            total_dust += dust
            sold_count += item.available
            balance = result.get("newStardustBalance", balance)
            outcome.completed.append({"key": item.key, "quantity": item.available, "dust": dust})

        outcome.details = {"dust": total_dust, "balance": balance, "quantity": sold_count}
        if outcome.failed is None:
            outcome.message = f"You sold **{sold_count}** duplicate Pokémon for **{total_dust:,}** stardust!"
        elif outcome.completed:
            outcome.success = False
            outcome.message = (
                f"Sold {len(outcome.completed)} of {len(pending)} groups "
                f"({sold_count} Pokémon, {total_dust:,} stardust) before an error: "
                f"{outcome.failed['message']}"
            )
        else:
            outcome.success = False
            outcome.message = outcome.failed["message"]
        return outcome

    def render_result(self, session: Session, outcome: Outcome) -> Render:
        if not outcome.success and not outcome.partial:
            return Render(content=f"❌ {outcome.message}")
        fields = [
            ("💰 Stardust Earned", f"{outcome.details.get('dust', 0):,}"),
            ("🎣 Pokémon Sold", str(outcome.details.get("quantity", 0))),
        ]
        if outcome.details.get("balance") is not None:
            fields.insert(1, ("💎 New Total Stardust", f"{outcome.details['balance']:,}"))
        if outcome.skipped:
            fields.append(("⏭️ Not attempted", ", ".join(entry["label"] for entry in outcome.skipped)[:1024]))
        embed = Embed(
            title="✅ Sale Complete!" if outcome.success else "⚠️ Sale Partially Complete",
            description=outcome.message,
            fields=tuple(fields),
            colour=0x2ECC71 if outcome.success else 0xE67E22,
        )
        return Render(embeds=(embed,))

    def render_cancelled(self, session: Session) -> Render:
        return Render(content="Sale cancelled.")


__all__ = ["SellDuplicatesFlow", "duplicate_item"]
