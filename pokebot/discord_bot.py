"""Discord bot entry point for the Pokémon economy commands."""

import logging
import os
from typing import Any, Dict, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .adapters.discord import ChannelMessage, InteractionMessage, event_from_interaction
from .backend import BackendClient, BackendConfig
from .config import Settings, get_settings
from .errors import BackendError
from .flows import default_flows
from .flows.battle import challenge_context
from .flows.browse import RARITY_CATEGORIES, SUPERTYPES
from .telemetry import get_telemetry
from .telemetry_decorator import track_command
from .workflow import WorkflowEngine

logger = logging.getLogger(__name__)

_SESSION_INTERACTIONS = (
    discord.InteractionType.component,
    discord.InteractionType.modal_submit,
)


def _choice_name(value: str) -> str:
    return " ".join(part.capitalize() for part in value.split("_"))


class PokeBot(commands.Bot):
    """Bot that owns the session engine and shuts it down with the client."""

    def __init__(self, engine: WorkflowEngine, retention_days: int = 30, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.engine = engine
        self.retention_days = retention_days

    async def setup_hook(self) -> None:
        removed = get_telemetry().prune(self.retention_days)
        logger.info(
            "Telemetry retention %d days, %d old events removed", self.retention_days, removed
        )

    async def close(self) -> None:
        await self.engine.close()
        await self.engine.backend.close()
        get_telemetry().flush()
        await super().close()


def build_bot(
    settings: Optional[Settings] = None,
    backend: Optional[BackendClient] = None,
    intents: Optional[discord.Intents] = None,
) -> commands.Bot:
    settings = settings or get_settings()
    backend = backend or BackendClient(BackendConfig.from_env(settings.backend_timeout))
    intents = intents or discord.Intents.default()
    app_id_raw = os.environ.get("DISCORD_APP_ID")
    application_id: Optional[int] = None
    if app_id_raw:
        try:
            application_id = int(app_id_raw)
        except ValueError:
            logger.warning("Invalid DISCORD_APP_ID: %s", app_id_raw)

    engine = WorkflowEngine(backend, settings, telemetry=get_telemetry())
    for flow in default_flows(settings):
        engine.register(flow)
    bot = PokeBot(
        engine,
        retention_days=settings.telemetry_retention_days,
        command_prefix="/",
        intents=intents,
        application_id=application_id,
    )

    async def _start_session(
        interaction: discord.Interaction,
        flow: str,
        *,
        ephemeral: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await interaction.response.defer(ephemeral=ephemeral, thinking=True)
        ctx = {"guild_id": interaction.guild_id}
        ctx.update(context or {})
        await engine.start(
            flow,
            owner_id=interaction.user.id,
            message=InteractionMessage(interaction),
            context=ctx,
        )

    @bot.event
    async def on_ready() -> None:
        logger.info("Pokebot connected as %s", bot.user)
        try:
            synced = await bot.tree.sync()
            logger.info("Synced %d commands", len(synced))
        except Exception as exc:  # pragma: no cover - logging only
            logger.exception("Failed to sync commands: %s", exc)

    async def on_interaction(interaction: discord.Interaction) -> None:
        if interaction.type not in _SESSION_INTERACTIONS:
            return
        event = event_from_interaction(interaction)
        if event is None:
            return
        try:
            handled = await engine.dispatch(event)
        except Exception:
            logger.exception("Failed to handle interaction %s", event.custom_id)
            get_telemetry().track_error(
                "interaction_failure",
                player_id=str(interaction.user.id),
                error_details=event.custom_id,
            )
            return
        if not handled:
            logger.debug("Interaction %s is not a session control", event.custom_id)

    bot.add_listener(on_interaction, "on_interaction")

    @app_commands.command(name="pokesellduplicates", description="Sell your duplicate Pokémon for stardust!")
    @track_command
    async def pokesellduplicates(interaction: discord.Interaction) -> None:
        await _start_session(interaction, "sell_duplicates", ephemeral=True)

    @app_commands.command(name="pokepacks", description="Browse and buy Pokémon TCG card packs")
    @track_command
    async def pokepacks(interaction: discord.Interaction) -> None:
        await _start_session(interaction, "packs")

    @app_commands.command(name="pokeopen", description="Open one of your unopened card packs")
    @track_command
    async def pokeopen(interaction: discord.Interaction) -> None:
        await _start_session(interaction, "open")

    @app_commands.command(name="pokeshop", description="View and buy special progression items")
    @track_command
    async def pokeshop(interaction: discord.Interaction) -> None:
        await _start_session(interaction, "shop", ephemeral=True)

    @app_commands.command(name="pokedex", description="View your collected Pokémon!")
    @track_command
    async def pokedex(interaction: discord.Interaction) -> None:
        await _start_session(interaction, "pokedex")

    @app_commands.command(name="pokecollection", description="View your Pokémon TCG card collection!")
    @track_command
    @app_commands.describe(
        search="Search cards by name",
        rarity="Filter by category of rarity",
        supertype="Filter by card type",
    )
    @app_commands.choices(
        rarity=[app_commands.Choice(name=_choice_name(key), value=key) for key in RARITY_CATEGORIES],
        supertype=[app_commands.Choice(name=value, value=value) for value in SUPERTYPES],
    )
    async def pokecollection(
        interaction: discord.Interaction,
        search: Optional[str] = None,
        rarity: Optional[app_commands.Choice[str]] = None,
        supertype: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        await _start_session(
            interaction,
            "collection",
            context={
                "search": search,
                "rarity": rarity.value if rarity else None,
                "supertype": supertype.value if supertype else None,
            },
        )

    @app_commands.command(name="pokebattle", description="Challenge another user to a Pokémon battle!")
    @track_command
    @app_commands.describe(
        opponent="The user you want to challenge",
        count="Number of Pokémon to battle with (max 5)",
        battledex="Use your preset BattleDex team if available",
        friendly="If false, winner gets 2x rewards and loser loses all Pokémon to winner",
    )
    async def pokebattle(
        interaction: discord.Interaction,
        opponent: discord.User,
        count: app_commands.Range[int, 1, 5] = 1,
        battledex: bool = False,
        friendly: bool = True,
    ) -> None:
        if opponent.id == interaction.user.id:
            await interaction.response.send_message("❌ You cannot battle yourself!", ephemeral=True)
            return
        if interaction.channel is None:
            await interaction.response.send_message(
                "❌ Battles can only be started in a channel.", ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True)
        try:
            battle = await backend.create_battle(
                challenger_id=interaction.user.id,
                opponent_id=opponent.id,
                guild_id=interaction.guild_id,
                count=count,
                friendly=friendly,
                battle_dex=battledex,
            )
        except BackendError as exc:
            await interaction.edit_original_response(content=f"❌ Could not start battle: {exc.message}")
            return
        await interaction.edit_original_response(
            content=f"Challenge sent to <@{opponent.id}>. Waiting for response..."
        )
        await engine.start(
            "battle",
            owner_id=opponent.id,
            message=ChannelMessage(interaction.channel, mention_user_ids=(opponent.id,)),
            context=challenge_context(
                battle,
                challenger_id=interaction.user.id,
                guild_id=interaction.guild_id,
                count=count,
                friendly=friendly,
            ),
        )

    @app_commands.command(name="pokebot_stats", description="Show command and session statistics")
    @track_command
    async def pokebot_stats(interaction: discord.Interaction) -> None:
        if not interaction.user.guild_permissions.administrator:
            await interaction.response.send_message(
                "This command requires administrator permissions.",
                ephemeral=True
            )
            return
        telemetry = get_telemetry()
        telemetry.flush()
        lines = ["**📊 Pokebot statistics (24h)**", f"Active sessions: {engine.store.active_count}"]
        for flow, states in sorted(telemetry.get_session_outcomes().items()):
            summary = ", ".join(f"{state}: {count}" for state, count in sorted(states.items()))
            lines.append(f"• {flow}: {summary}")
        for command, stats in sorted(telemetry.get_command_stats().items()):
            lines.append(
                f"• /{command}: {stats['usage_count']} uses, "
                f"{stats['success_rate'] * 100:.0f}% success, {stats['unique_players']} players"
            )
        errors = telemetry.get_error_summary()
        if errors:
            lines.append("Errors: " + ", ".join(f"{name} x{count}" for name, count in errors.items()))
        await interaction.response.send_message("\n".join(lines)[:1900], ephemeral=True)

    bot.tree.add_command(pokesellduplicates)
    bot.tree.add_command(pokepacks)
    bot.tree.add_command(pokeopen)
    bot.tree.add_command(pokeshop)
    bot.tree.add_command(pokedex)
    bot.tree.add_command(pokecollection)
    bot.tree.add_command(pokebattle)
    bot.tree.add_command(pokebot_stats)
    return bot


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable must be set")
    bot = build_bot()
    bot.run(token)


__all__ = ["PokeBot", "build_bot", "main"]
