"""Session workflow engine.

Routes every component and modal interaction to the session it belongs to and
applies the transition table::

    Browsing --prev/next/search/filter--> Browsing
    Browsing --select/pick--> ConfirmingQuantity | Submitting
    Browsing --all--> Submitting
    ConfirmingQuantity --quantity (valid)--> Submitting
    Submitting --backend result--> Resolved
    any non-terminal --cancel/timeout--> Cancelled | Expired

Terminal transitions clear in-flight action keys, cancel timers, close modal
waits, render the final message with its components disabled and destroy the
session.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

from .backend import BackendClient
from .config import Settings, get_settings
from .custom_id import CustomId
from .errors import (
    BackendError,
    IllegalTransition,
    MalformedCustomId,
    NotOwner,
    SessionTimeout,
    StaleSession,
    ValidationError,
)
from .expiry import DomainTimer, ExpirySupervisor
from .flows.base import QUANTITY_FIELD, QUERY_FIELD, Flow, parse_quantity
from .idempotency import IdempotencyGuard
from .modals import ModalBroker, ModalSubscription
from .models import EventKind, InteractionEvent, Item, Outcome, Session, SessionState
from .pagination import page_for, paginate
from .render import MessageHandle, Render, RenderSink
from .sessions import SessionStore
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)

Handler = Callable[["WorkflowEngine", Flow, CustomId, InteractionEvent], Awaitable[None]]

_NOT_OWNER = "These controls belong to someone else. Run the command yourself to get your own."


class WorkflowEngine:
    def __init__(
        self,
        backend: BackendClient,
        settings: Optional[Settings] = None,
        *,
        store: Optional[SessionStore] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self.store = store or SessionStore(self.settings.tombstone_ttl)
        self.guard = IdempotencyGuard(self.store)
        self.supervisor = ExpirySupervisor(self.expire)
        self.domain_timers = DomainTimer()
        self.modals = ModalBroker()
        self.telemetry = telemetry
        self._flows: Dict[str, Flow] = {}
        self._messages: Dict[str, MessageHandle] = {}
        self._last_render: Dict[str, Render] = {}
        self._modal_tasks: Dict[str, asyncio.Task] = {}

    # Registration -------------------------------------------------------

    def register(self, flow: Flow) -> Flow:
        if flow.name in self._flows:
            raise ValueError(f"Flow {flow.name} already registered")
        self._flows[flow.name] = flow
        return flow

    def flow(self, name: str) -> Flow:
        try:
            return self._flows[name]
        except KeyError:
            raise KeyError(f"Unknown flow {name}") from None

    def message_for(self, session_id: str) -> Optional[MessageHandle]:
        return self._messages.get(session_id)

    # Session start ------------------------------------------------------

    async def start(
        self,
        flow_name: str,
        *,
        owner_id: int,
        message: MessageHandle,
        context: Optional[Mapping[str, Any]] = None,
        items: Optional[Sequence[Item]] = None,
    ) -> Optional[Session]:
        """Load the collection, render the first page and arm the timers.

        Returns ``None`` when there is nothing to browse; the message then
        carries the reason instead of components.
        """

        flow = self.flow(flow_name)
        ctx: Dict[str, Any] = dict(context or {})
        if items is None:
            try:
                items = await flow.load_items(self.backend, owner_id, ctx)
            except BackendError as exc:
                logger.warning("Failed to load %s items for %s: %s", flow.name, owner_id, exc)
                await message.edit(Render(content=f"❌ {exc.message}"))
                return None
        if not items:
            await message.edit(Render(content=flow.empty_message(ctx)))
            return None

        timing = flow.timing
        session = self.store.create(
            owner_id,
            items,
            timing.page_size,
            flow=flow.name,
            context=ctx,
            hard_timeout=timing.hard_timeout,
            idle_timeout=timing.idle_timeout,
        )
        sid = session.session_id
        self._messages[sid] = message
        render = flow.render_browse(session, paginate(session.items, None, 0, session.page_size))
        self._last_render[sid] = render
        try:
            await message.edit(render)
        except Exception:
            self._messages.pop(sid, None)
            self._last_render.pop(sid, None)
            self.store.destroy(sid)
            raise
        self.supervisor.start(
            sid, hard_timeout=timing.hard_timeout, idle_timeout=timing.idle_timeout
        )
        logger.info("Started %s session %s for %s", flow.name, sid, owner_id)
        session = self.store.get(sid)
        await flow.after_started(self, session)
        return session

    # Event routing ------------------------------------------------------

    async def dispatch(self, event: InteractionEvent) -> bool:
        """Route one interaction. Returns ``False`` if no session flow owns it."""

        try:
            cid = CustomId.parse(event.custom_id)
        except MalformedCustomId:
            return False
        flow = self._flows.get(cid.flow)
        if flow is None:
            return False
        sink = event.sink
        if sink is None:
            raise ValueError("Events routed to the engine need a render sink")

        try:
            session = self.store.get(cid.session_id)
            self.store.authorize(session, event.actor_id)
        except StaleSession:
            logger.debug("Stale %s event for session %s", cid.verb, cid.session_id)
            await sink.reply(Render(content=flow.stale_message(), ephemeral=True))
            return True
        except NotOwner:
            logger.debug("Rejected %s from non-owner %s", cid.verb, event.actor_id)
            await sink.reply(Render(content=_NOT_OWNER, ephemeral=True))
            return True

        handler = _TRANSITIONS.get((session.state, cid.verb))
        if handler is None:
            logger.debug(
                "Ignoring %s on session %s in state %s", cid.verb, cid.session_id, session.state.value
            )
            await sink.acknowledge()
            return True

        try:
            await self._touch(cid.session_id)
            await handler(self, flow, cid, event)
        except StaleSession:
            await sink.reply(Render(content=flow.stale_message(), ephemeral=True))
        except MalformedCustomId:
            logger.warning("Malformed control %s on session %s", event.custom_id, cid.session_id)
            await sink.acknowledge()
        return True

    async def _touch(self, session_id: str) -> None:
        window = self.supervisor.touch(session_id)
        if window is None:
            return
        deadline = datetime.now(timezone.utc) + timedelta(seconds=window)

        def _refresh(session: Session) -> None:
            session.idle_expires_at = deadline

        await self.store.mutate(session_id, _refresh)

    # Browsing -----------------------------------------------------------

    async def _on_page(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        target = cid.page_arg() + (1 if cid.verb == "next" else -1)

        def _turn(session: Session) -> None:
            view = page_for(session.items, session.filter_query, target, session.page_size)
            session.page_index = view.current_page

        session = await self.store.mutate(cid.session_id, _turn)
        await self._render_browse(flow, session, event.sink)

    async def _on_search(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        if not flow.searchable:
            await event.sink.acknowledge()
            return
        session = self.store.get(cid.session_id)
        await event.sink.show_modal(flow.filter_prompt(session))

    async def _on_filter(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        query = (event.fields.get(QUERY_FIELD) or "").strip() or None

        def _filter(session: Session) -> None:
            session.filter_query = query
            session.page_index = 0

        session = await self.store.mutate(cid.session_id, _filter)
        await self._render_browse(flow, session, event.sink)

    async def _render_browse(self, flow: Flow, session: Session, sink: RenderSink) -> None:
        view = paginate(session.items, session.filter_query, session.page_index, session.page_size)
        render = flow.render_browse(session, view)
        self._last_render[session.session_id] = render
        await sink.update(render)

    # Selection ----------------------------------------------------------

    async def _on_select(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        sid = cid.session_id
        key = cid.arg if cid.verb == "pick" else (event.values[0] if event.values else None)
        async with self.guard.claim(sid, cid.action_key) as acquired:
            if not acquired:
                await event.sink.acknowledge()
                return
            item = self.store.get(sid).find_item(key) if key else None
            if item is None or not item.actionable:
                await event.sink.reply(Render(content=flow.unavailable_message(), ephemeral=True))
                return
            needs_quantity = flow.requires_quantity(item)

            def _select(session: Session) -> None:
                if session.state is not SessionState.BROWSING:
                    raise IllegalTransition(f"Cannot select in {session.state.value}", sid)
                session.selection = item
                if needs_quantity:
                    session.state = SessionState.CONFIRMING_QUANTITY
                    session.modal_open = True
                else:
                    session.state = SessionState.SUBMITTING
                    session.quantity = 1

            try:
                session = await self.store.mutate(sid, _select)
            except IllegalTransition:
                await event.sink.acknowledge()
                return

            if needs_quantity:
                subscription = self.modals.subscribe(sid)
                self._modal_tasks[sid] = asyncio.create_task(
                    self._await_quantity(flow, subscription), name=f"modal-{sid}"
                )
                await event.sink.show_modal(flow.quantity_prompt(session))
                return

            await event.sink.update(flow.render_pending(session))
            await self._submit(flow, sid, event.sink)

    async def _on_bulk(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        if not flow.bulk_label:
            await event.sink.acknowledge()
            return
        sid = cid.session_id
        async with self.guard.claim(sid, cid.action_key) as acquired:
            if not acquired:
                await event.sink.acknowledge()
                return

            def _select_all(session: Session) -> None:
                if session.state is not SessionState.BROWSING:
                    raise IllegalTransition(f"Cannot submit in {session.state.value}", sid)
                session.selection = None
                session.bulk = True
                session.quantity = sum(item.available for item in session.items)
                session.state = SessionState.SUBMITTING

            try:
                session = await self.store.mutate(sid, _select_all)
            except IllegalTransition:
                await event.sink.acknowledge()
                return
            await event.sink.update(flow.render_pending(session))
            await self._submit(flow, sid, event.sink)

    async def _on_quantity(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        if event.kind is EventKind.MODAL_SUBMIT:
            if not self.modals.deliver(cid.session_id, event):
                # The prompt already took an answer; this is a repeated submit.
                await event.sink.acknowledge()
            return
        # Re-open the prompt after a validation error; the original deadline stands.
        session = self.store.get(cid.session_id)
        await event.sink.show_modal(flow.quantity_prompt(session))

    async def _await_quantity(self, flow: Flow, subscription: ModalSubscription) -> None:
        sid = subscription.session_id
        loop = asyncio.get_running_loop()
        deadline = loop.time() + flow.timing.modal_timeout
        try:
            async with subscription:
                while True:
                    try:
                        event = await subscription.wait(deadline - loop.time())
                    except SessionTimeout:
                        await self.expire(sid, "modal-timeout")
                        return
                    session = self.store.get(sid)
                    available = session.selection.available if session.selection else 0
                    try:
                        quantity = parse_quantity(event.fields.get(QUANTITY_FIELD), available)
                    except ValidationError as exc:
                        await event.sink.reply(flow.render_invalid_quantity(session, str(exc)))
                        continue
                    break
            await self._confirm_quantity(flow, sid, quantity, event.sink)
        except StaleSession:
            logger.debug("Session %s ended while waiting for a quantity", sid)
        finally:
            if self._modal_tasks.get(sid) is asyncio.current_task():
                del self._modal_tasks[sid]

    async def _confirm_quantity(
        self, flow: Flow, sid: str, quantity: int, sink: RenderSink
    ) -> None:
        async with self.guard.claim(sid, "quantity") as acquired:
            if not acquired:
                await sink.acknowledge()
                return

            def _confirm(session: Session) -> None:
                if session.state is not SessionState.CONFIRMING_QUANTITY:
                    raise IllegalTransition(f"Cannot confirm in {session.state.value}", sid)
                session.quantity = quantity
                session.modal_open = False
                session.state = SessionState.SUBMITTING

            try:
                session = await self.store.mutate(sid, _confirm)
            except IllegalTransition:
                await sink.acknowledge()
                return
            await sink.acknowledge()
            message = self._messages.get(sid)
            if message is not None:
                await message.edit(flow.render_pending(session))
            await self._submit(flow, sid, sink)

    # Submission and termination ----------------------------------------

    async def _submit(self, flow: Flow, sid: str, sink: RenderSink) -> None:
        session = self.store.get(sid)
        message = self._messages.get(sid)
        started = time.monotonic()
        try:
            if session.bulk:
                outcome = await flow.submit_bulk(self.backend, session)
            else:
                outcome = await flow.submit(self.backend, session)
        except BackendError as exc:
            logger.warning("%s submission for session %s failed: %s", flow.name, sid, exc)
            outcome = Outcome(success=False, message=exc.message, details={"status": exc.status})
        except Exception:
            logger.exception("%s submission for session %s crashed", flow.name, sid)
            outcome = Outcome(success=False, message="Something went wrong. Please try again later.")
        if self.telemetry is not None:
            self.telemetry.track_performance(
                f"{flow.name}.submit", (time.monotonic() - started) * 1000, {"flow": flow.name}
            )

        render = flow.render_result(session, outcome)
        if not await self._finish(sid, SessionState.RESOLVED, render, outcome=outcome):
            # The session expired during the backend call; the action still happened.
            await sink.reply(replace(render, components=(), ephemeral=True))
            return
        try:
            await flow.after_resolved(self, session, outcome, message)
        except Exception:
            logger.exception("Follow-up for %s session %s failed", flow.name, sid)

    async def _on_cancel(self, flow: Flow, cid: CustomId, event: InteractionEvent) -> None:
        async with self.guard.claim(cid.session_id, cid.action_key) as acquired:
            if not acquired:
                await event.sink.acknowledge()
                return
            session = self.store.get(cid.session_id)
            finished = await self._finish(
                cid.session_id,
                SessionState.CANCELLED,
                flow.render_cancelled(session),
                sink=event.sink,
            )
            if not finished:
                await event.sink.acknowledge()

    async def expire(self, session_id: str, reason: str = "idle-timeout") -> bool:
        """Force a live session into ``Expired``; no-op for finished ones."""

        try:
            session = self.store.get(session_id)
        except StaleSession:
            return False
        flow = self._flows[session.flow]
        last = self._last_render.get(session_id, Render())
        render = last.disabled(flow.expired_message(reason))
        finished = await self._finish(
            session_id,
            SessionState.EXPIRED,
            render,
            outcome=Outcome(success=False, message=reason),
        )
        if finished:
            try:
                await flow.on_expired(self.backend, session, reason)
            except BackendError as exc:
                logger.warning("Cleanup after %s expiry of %s failed: %s", flow.name, session_id, exc)
        return finished

    async def _finish(
        self,
        sid: str,
        state: SessionState,
        render: Render,
        *,
        outcome: Optional[Outcome] = None,
        sink: Optional[RenderSink] = None,
    ) -> bool:
        transitioned = False
        waiting_on_modal = False

        def _terminate(session: Session) -> None:
            nonlocal transitioned, waiting_on_modal
            if session.state.is_terminal:
                return
            waiting_on_modal = session.modal_open
            session.state = state
            session.outcome = outcome
            session.pending_action_keys.clear()
            session.modal_open = False
            transitioned = True

        try:
            session = await self.store.mutate(sid, _terminate)
        except StaleSession:
            return False
        if not transitioned:
            return False

        self.supervisor.cancel(sid)
        task = self._modal_tasks.pop(sid, None)
        # After confirmation the task carries the backend call; let it report.
        if waiting_on_modal and task is not None and task is not asyncio.current_task():
            task.cancel()
        message = self._messages.pop(sid, None)
        self._last_render.pop(sid, None)
        self.store.destroy(sid)
        logger.info("Session %s (%s) finished as %s", sid, session.flow, state.value)

        final = render.disabled()
        try:
            if sink is not None:
                await sink.update(final)
            elif message is not None:
                await message.edit(final)
        except Exception:
            logger.exception("Failed to render final state of session %s", sid)
        self._record(session, outcome)
        return True

    def _record(self, session: Session, outcome: Optional[Outcome]) -> None:
        if self.telemetry is None:
            return
        self.telemetry.track_session_outcome(
            session.flow,
            session.state.value,
            player_id=str(session.owner_user_id),
            success=bool(outcome and outcome.success),
            details={
                "message": outcome.message if outcome else None,
                "partial": bool(outcome and outcome.partial),
                "quantity": session.quantity,
            },
        )

    async def close(self) -> None:
        for task in list(self._modal_tasks.values()):
            task.cancel()
        await asyncio.gather(*self._modal_tasks.values(), return_exceptions=True)
        self._modal_tasks.clear()
        await self.supervisor.shutdown()
        await self.domain_timers.shutdown()


_TRANSITIONS: Dict[Tuple[SessionState, str], Handler] = {
    (SessionState.BROWSING, "prev"): WorkflowEngine._on_page,
    (SessionState.BROWSING, "next"): WorkflowEngine._on_page,
    (SessionState.BROWSING, "search"): WorkflowEngine._on_search,
    (SessionState.BROWSING, "filter"): WorkflowEngine._on_filter,
    (SessionState.BROWSING, "select"): WorkflowEngine._on_select,
    (SessionState.BROWSING, "pick"): WorkflowEngine._on_select,
    (SessionState.BROWSING, "all"): WorkflowEngine._on_bulk,
    (SessionState.BROWSING, "cancel"): WorkflowEngine._on_cancel,
    (SessionState.CONFIRMING_QUANTITY, "quantity"): WorkflowEngine._on_quantity,
    (SessionState.CONFIRMING_QUANTITY, "cancel"): WorkflowEngine._on_cancel,
}


__all__ = ["WorkflowEngine"]
