"""Tests for the Discord adapter: component builders and interaction plumbing.

``discord.ui`` views and modals need a running event loop, so the builder
tests are async.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from pokebot.adapters.discord import (
    ChannelMessage,
    DiscordRenderSink,
    FollowupMessage,
    build_embed,
    build_modal,
    build_view,
    event_from_interaction,
    message_kwargs,
)
from pokebot.models import EventKind
from pokebot.render import (
    Button,
    ButtonStyle,
    Embed,
    ModalPrompt,
    Render,
    SelectMenu,
    SelectOption,
    TextInput,
)


def _render():
    return Render(
        content="Pick one",
        components=(
            SelectMenu(
                custom_id="packs:ab12:select:0",
                placeholder="Select a pack",
                options=(SelectOption(label="Base", value="base", description="10 cards"),),
                row=0,
            ),
            Button(custom_id="packs:ab12:next:0", label="Next", style=ButtonStyle.PRIMARY, row=1),
            Button(custom_id="packs:ab12:cancel", label="Cancel", style=ButtonStyle.DANGER, disabled=True, row=1),
        ),
        embeds=(Embed(title="Packs", description="Base set", fields=(("Cards", ""),), footer="Page 1 of 2"),),
    )


def _interaction(*, done=False, **fields):
    response = SimpleNamespace(
        is_done=Mock(return_value=done),
        defer=AsyncMock(),
        edit_message=AsyncMock(),
        send_message=AsyncMock(),
        send_modal=AsyncMock(),
    )
    base = dict(
        response=response,
        followup=SimpleNamespace(send=AsyncMock()),
        edit_original_response=AsyncMock(),
        user=SimpleNamespace(id=42),
        message=SimpleNamespace(id=777),
        type=discord.InteractionType.component,
        data={},
    )
    base.update(fields)
    return SimpleNamespace(**base)


def test_build_embed_fills_empty_fields():
    embed = build_embed(Embed(title="Shop", fields=(("Effect", ""), ("Price", "250")), colour=0x123456))

    assert embed.title == "Shop"
    assert embed.colour.value == 0x123456
    assert [field.value for field in embed.fields] == ["\u200b", "250"]
    assert not any(field.inline for field in embed.fields)


@pytest.mark.asyncio
async def test_build_view_without_components_is_none():
    assert build_view(Render(content="Done")) is None


@pytest.mark.asyncio
async def test_build_view_maps_components():
    """Views are finished so clicks go to the interaction listener."""
    view = build_view(_render())

    assert view is not None
    assert view.is_finished()
    select, next_button, cancel = view.children
    assert isinstance(select, discord.ui.Select)
    assert select.custom_id == "packs:ab12:select:0"
    assert [option.value for option in select.options] == ["base"]
    assert next_button.style == discord.ButtonStyle.primary
    assert cancel.style == discord.ButtonStyle.danger
    assert cancel.disabled


@pytest.mark.asyncio
async def test_build_modal_truncates_title():
    prompt = ModalPrompt(
        custom_id="sell_duplicates:ab12:quantity",
        title="Sell " + "Pikachu" * 10,
        inputs=(TextInput(custom_id="quantity", label="Quantity", placeholder="1-4", max_length=4),),
    )
    modal = build_modal(prompt)

    assert len(modal.title) == 45
    assert modal.custom_id == "sell_duplicates:ab12:quantity"
    (field,) = modal.children
    assert field.custom_id == "quantity"
    assert field.max_length == 4


@pytest.mark.asyncio
async def test_message_kwargs_edit_clears_stale_parts():
    edit = message_kwargs(Render(content="Sale cancelled."), edit=True)
    assert edit == {"content": "Sale cancelled.", "embeds": [], "view": None}

    send = message_kwargs(Render(content="Sale cancelled."), edit=False)
    assert send == {"content": "Sale cancelled."}


@pytest.mark.asyncio
async def test_sink_update_edits_component_message():
    interaction = _interaction()
    await DiscordRenderSink(interaction).update(Render(content="Page 2"))

    interaction.response.edit_message.assert_awaited_once()
    assert interaction.response.edit_message.await_args.kwargs["content"] == "Page 2"
    interaction.edit_original_response.assert_not_awaited()


@pytest.mark.asyncio
async def test_sink_reply_after_defer_uses_followup():
    interaction = _interaction(done=True)
    sink = DiscordRenderSink(interaction)

    await sink.acknowledge()
    await sink.reply(Render(content="Not yours", ephemeral=True))

    interaction.response.defer.assert_not_awaited()
    interaction.followup.send.assert_awaited_once_with(ephemeral=True, content="Not yours")


@pytest.mark.asyncio
async def test_followup_message_sends_then_edits():
    sent = SimpleNamespace(edit=AsyncMock())
    interaction = _interaction(followup=SimpleNamespace(send=AsyncMock(return_value=sent)))
    handle = FollowupMessage(interaction)

    await handle.edit(Render(content="Card 1"))
    await handle.edit(Render(content="Card 2"))

    interaction.followup.send.assert_awaited_once_with(wait=True, content="Card 1")
    sent.edit.assert_awaited_once_with(content="Card 2", embeds=[], view=None)


@pytest.mark.asyncio
async def test_channel_message_mentions_only_on_first_send():
    posted = SimpleNamespace(edit=AsyncMock())
    channel = SimpleNamespace(send=AsyncMock(return_value=posted))
    handle = ChannelMessage(channel, mention_user_ids=(99,))

    await handle.edit(Render(content="<@99> you have been challenged"))
    await handle.edit(Render(content="Battle declined"))

    mentions = channel.send.await_args.kwargs["allowed_mentions"]
    assert [user.id for user in mentions.users] == [99]
    assert posted.edit.await_args.kwargs["content"] == "Battle declined"


def test_component_interaction_becomes_event():
    interaction = _interaction(
        data={"custom_id": "packs:ab12:select:0", "component_type": 3, "values": ["base"]}
    )
    event = event_from_interaction(interaction)

    assert event.kind == EventKind.SELECT
    assert event.actor_id == 42
    assert event.message_id == 777
    assert event.values == ("base",)
    assert isinstance(event.sink, DiscordRenderSink)


def test_modal_submit_collects_fields():
    interaction = _interaction(
        type=discord.InteractionType.modal_submit,
        message=None,
        data={
            "custom_id": "sell_duplicates:ab12:quantity",
            "components": [
                {"type": 1, "components": [{"type": 4, "custom_id": "quantity", "value": "3"}]},
                {"type": 18, "component": {"type": 4, "custom_id": "note", "value": None}},
            ],
        },
    )
    event = event_from_interaction(interaction)

    assert event.kind == EventKind.MODAL_SUBMIT
    assert event.message_id is None
    assert dict(event.fields) == {"quantity": "3", "note": ""}


def test_unrelated_interaction_is_ignored():
    assert event_from_interaction(_interaction(data={"name": "pokepacks"})) is None
