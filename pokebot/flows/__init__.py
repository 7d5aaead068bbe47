"""Command flows driven by the session engine."""
from __future__ import annotations

from typing import List

from ..config import Settings
from .base import Flow, parse_quantity
from .battle import BattleChallengeFlow
from .browse import CollectionFlow, PokedexFlow
from .duplicates import SellDuplicatesFlow
from .packs import CardViewerFlow, PackOpenFlow, PackShopFlow
from .shop import ItemShopFlow


def default_flows(settings: Settings) -> List[Flow]:
    """Instantiate every flow with its configured timing."""

    return [
        SellDuplicatesFlow(settings.timing(SellDuplicatesFlow.name)),
        PackShopFlow(settings.timing(PackShopFlow.name)),
        PackOpenFlow(settings.timing(PackOpenFlow.name)),
        CardViewerFlow(settings.timing(CardViewerFlow.name)),
        ItemShopFlow(settings.timing(ItemShopFlow.name)),
        PokedexFlow(settings.timing(PokedexFlow.name)),
        CollectionFlow(settings.timing(CollectionFlow.name), limit=settings.collection_limit),
        BattleChallengeFlow(settings.timing(BattleChallengeFlow.name), expiry=settings.battle_expiry),
    ]


__all__ = [
    "BattleChallengeFlow",
    "CardViewerFlow",
    "CollectionFlow",
    "Flow",
    "ItemShopFlow",
    "PackOpenFlow",
    "PackShopFlow",
    "PokedexFlow",
    "SellDuplicatesFlow",
    "default_flows",
    "parse_quantity",
]
