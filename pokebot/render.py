"""Platform-neutral render instructions produced by the session engine.

The engine never touches Discord objects directly. It emits ``Render`` and
``ModalPrompt`` values to a ``RenderSink`` (one interaction) or a
``MessageHandle`` (the session's message, edited out of band when a timer
fires). The Discord adapter converts them into ``discord.ui`` components.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Protocol, Tuple, Union

_MAX_MESSAGE_LENGTH = 1900


def _clamp_text(text: str) -> str:
    """Ensure Discord-compatible message length."""

    if len(text) <= _MAX_MESSAGE_LENGTH:
        return text
    return text[: _MAX_MESSAGE_LENGTH - 1].rstrip() + "…"


class ButtonStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    DANGER = "danger"


@dataclass(frozen=True)
class Button:
    custom_id: str
    label: str
    style: ButtonStyle = ButtonStyle.SECONDARY
    disabled: bool = False
    row: Optional[int] = None


@dataclass(frozen=True)
class SelectOption:
    label: str
    value: str
    description: Optional[str] = None


@dataclass(frozen=True)
class SelectMenu:
    custom_id: str
    placeholder: str
    options: Tuple[SelectOption, ...]
    disabled: bool = False
    row: Optional[int] = None


Component = Union[Button, SelectMenu]


@dataclass(frozen=True)
class TextInput:
    custom_id: str
    label: str
    placeholder: Optional[str] = None
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ModalPrompt:
    custom_id: str
    title: str
    inputs: Tuple[TextInput, ...]


@dataclass(frozen=True)
class Embed:
    title: str
    description: str = ""
    fields: Tuple[Tuple[str, str], ...] = ()
    footer: Optional[str] = None
    colour: Optional[int] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Render:
    """What a message should look like after a transition."""

    content: Optional[str] = None
    components: Tuple[Component, ...] = ()
    embeds: Tuple[Embed, ...] = ()
    ephemeral: bool = False

    def __post_init__(self) -> None:
        if self.content is not None:
            object.__setattr__(self, "content", _clamp_text(self.content))

    def disabled(self, content: Optional[str] = None) -> "Render":
        """Same message with every interactive component disabled."""

        return replace(
            self,
            content=content if content is not None else self.content,
            components=disable_all(self.components),
        )


def disable_all(components: Tuple[Component, ...]) -> Tuple[Component, ...]:
    return tuple(replace(component, disabled=True) for component in components)


class RenderSink(Protocol):
    """Answers a single interaction."""

    async def acknowledge(self) -> None:
        ...

    async def update(self, render: Render) -> None:
        ...

    async def reply(self, render: Render) -> None:
        ...

    async def show_modal(self, modal: ModalPrompt) -> None:
        ...


class MessageHandle(Protocol):
    """Edits the session's message without an incoming interaction."""

    async def edit(self, render: Render) -> None:
        ...

    def followup(self) -> "MessageHandle":
        """A handle for a new message posted after this one."""
        ...


__all__ = [
    "Button",
    "ButtonStyle",
    "Component",
    "Embed",
    "MessageHandle",
    "ModalPrompt",
    "Render",
    "RenderSink",
    "SelectMenu",
    "SelectOption",
    "TextInput",
    "disable_all",
]
