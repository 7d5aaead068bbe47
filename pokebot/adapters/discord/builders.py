"""Discord embed/view/modal builders.

Pure construction helpers that turn the engine's render values into
``discord.ui`` objects. Keeping these in a separate module makes them easy to
unit test without a gateway connection.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import discord

from ...render import (
    Button,
    ButtonStyle,
    Embed,
    ModalPrompt,
    Render,
    SelectMenu,
)

_BUTTON_STYLES = {
    ButtonStyle.PRIMARY: discord.ButtonStyle.primary,
    ButtonStyle.SECONDARY: discord.ButtonStyle.secondary,
    ButtonStyle.SUCCESS: discord.ButtonStyle.success,
    ButtonStyle.DANGER: discord.ButtonStyle.danger,
}


def build_embed(embed: Embed) -> discord.Embed:
    result = discord.Embed(
        title=embed.title,
        description=embed.description or None,
        colour=embed.colour if embed.colour is not None else discord.Color.blurple(),
    )
    for name, value in embed.fields:
        result.add_field(name=name[:256], value=value[:1024] or "\u200b", inline=False)
    if embed.footer:
        result.set_footer(text=embed.footer)
    if embed.image_url:
        result.set_image(url=embed.image_url)
    return result


def build_view(render: Render) -> Optional[discord.ui.View]:
    """Build a view for the render's components, or ``None`` if it has none.

    The view is stopped before it is returned: discord.py then never stores it,
    so clicks reach the ``on_interaction`` listener and the session engine
    instead of a view callback with its own timeout.
    """

    if not render.components:
        return None
    view = discord.ui.View(timeout=None)
    for component in render.components:
        if isinstance(component, Button):
            view.add_item(
                discord.ui.Button(
                    style=_BUTTON_STYLES[component.style],
                    label=component.label,
                    custom_id=component.custom_id,
                    disabled=component.disabled,
                    row=component.row,
                )
            )
        elif isinstance(component, SelectMenu):
            view.add_item(
                discord.ui.Select(
                    custom_id=component.custom_id,
                    placeholder=component.placeholder,
                    options=[
                        discord.SelectOption(
                            label=option.label,
                            value=option.value,
                            description=option.description,
                        )
                        for option in component.options
                    ],
                    disabled=component.disabled,
                    row=component.row,
                )
            )
    view.stop()
    return view


def build_modal(prompt: ModalPrompt) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=prompt.title[:45], custom_id=prompt.custom_id, timeout=None)
    for field in prompt.inputs:
        modal.add_item(
            discord.ui.TextInput(
                label=field.label[:45],
                custom_id=field.custom_id,
                placeholder=field.placeholder,
                required=field.required,
                min_length=field.min_length,
                max_length=field.max_length,
            )
        )
    modal.stop()
    return modal


def message_kwargs(render: Render, *, edit: bool) -> Dict[str, Any]:
    """Keyword arguments for ``send``/``edit`` calls.

    Edits always pass ``view`` and ``embeds`` so stale components and embeds
    are cleared; sends omit what is empty.
    """

    view = build_view(render)
    embeds = [build_embed(embed) for embed in render.embeds]
    if edit:
        return {"content": render.content, "embeds": embeds, "view": view}
    kwargs: Dict[str, Any] = {"content": render.content}
    if embeds:
        kwargs["embeds"] = embeds
    if view is not None:
        kwargs["view"] = view
    return kwargs


__all__ = ["build_embed", "build_modal", "build_view", "message_kwargs"]
