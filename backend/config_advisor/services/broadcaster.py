"""Fan-out of live recommendation updates to subscribed clients."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Callable
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from config_advisor.core.config import settings
from config_advisor.core.exceptions import ConfigAdvisorException
from config_advisor.models.enums import ConflictSeverity
from config_advisor.schemas.events import (
    ConfidenceUpdateEvent,
    ConflictDetectedEvent,
    ConnectedEvent,
    ErrorEvent,
    InboundMessage,
    PatternUpdateEvent,
    RecommendationUpdateEvent,
)
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import Conflict, Recommendation

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]
RecalculateFn = Callable[[str, InboundMessage], Any]


@dataclass
class _Client:
    send: SendFn
    subscriptions: set[str] = field(default_factory=set)
    org_id: str | None = None
    # Serialises sends to this client only; other clients never wait on it.
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class UpdateBroadcaster:
    def __init__(
        self,
        *,
        on_recalculate: RecalculateFn | None = None,
        send_timeout_seconds: float | None = None,
    ) -> None:
        self.on_recalculate = on_recalculate
        self.send_timeout_seconds = (
            send_timeout_seconds if send_timeout_seconds is not None else settings.WS_SEND_TIMEOUT_SECONDS
        )
        self._clients: dict[str, _Client] = {}
        self._latest: dict[str, list[Recommendation]] = {}
        self._registry_lock = Lock()

    # ----- registry -----

    async def register(self, send: SendFn, *, client_id: str | None = None) -> str:
        client_id = client_id or str(uuid4())
        with self._registry_lock:
            self._clients[client_id] = _Client(send=send)
        await self._deliver([client_id], ConnectedEvent(client_id=client_id))
        logger.info("Live update client connected: %s", client_id)
        return client_id

    def unregister(self, client_id: str) -> None:
        with self._registry_lock:
            removed = self._clients.pop(client_id, None)
        if removed is not None:
            logger.info("Live update client disconnected: %s", client_id)

    async def subscribe(self, client_id: str, ticket_id: str, org_id: str | None = None) -> bool:
        with self._registry_lock:
            client = self._clients.get(client_id)
            if client is None:
                return False
            client.subscriptions.add(ticket_id)
            if org_id:
                client.org_id = org_id
            cached = self._latest.get(ticket_id)
        if cached is not None:
            await self._deliver(
                [client_id],
                RecommendationUpdateEvent(ticket_id=ticket_id, data=cached, from_cache=True),
            )
        return True

    def unsubscribe(self, client_id: str, ticket_id: str) -> None:
        with self._registry_lock:
            client = self._clients.get(client_id)
            if client is not None:
                client.subscriptions.discard(ticket_id)

    def client_count(self) -> int:
        with self._registry_lock:
            return len(self._clients)

    def subscription_count(self, ticket_id: str) -> int:
        with self._registry_lock:
            return sum(1 for client in self._clients.values() if ticket_id in client.subscriptions)

    def latest(self, ticket_id: str) -> list[Recommendation] | None:
        with self._registry_lock:
            cached = self._latest.get(ticket_id)
            return list(cached) if cached is not None else None

    def close(self) -> None:
        with self._registry_lock:
            self._clients.clear()
            self._latest.clear()

    def _ticket_subscribers(self, ticket_id: str) -> list[str]:
        with self._registry_lock:
            return [cid for cid, client in self._clients.items() if ticket_id in client.subscriptions]

    # ----- delivery -----

    async def _deliver(self, client_ids: list[str], event: BaseModel) -> int:
        payload = event.model_dump(mode="json")
        with self._registry_lock:
            targets = [(cid, self._clients[cid]) for cid in client_ids if cid in self._clients]
        if not targets:
            return 0
        sent = await asyncio.gather(*(self._send(cid, client, payload) for cid, client in targets))
        return sum(1 for ok in sent if ok)

    async def _send(self, client_id: str, client: _Client, payload: dict[str, Any]) -> bool:
        async with client.send_lock:
            with self._registry_lock:
                if self._clients.get(client_id) is not client:
                    return False
            try:
                await asyncio.wait_for(client.send(payload), timeout=self.send_timeout_seconds)
                return True
            except asyncio.TimeoutError:
                logger.warning(
                    "Dropping client %s after send timed out (%ss)", client_id, self.send_timeout_seconds
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Dropping client %s after failed send: %s", client_id, exc)
        self.unregister(client_id)
        return False

    async def broadcast_recommendation_update(
        self,
        ticket_id: str,
        recommendations: list[Recommendation],
        update_type: str = "full",
    ) -> int:
        with self._registry_lock:
            self._latest[ticket_id] = list(recommendations)
        event = RecommendationUpdateEvent(ticket_id=ticket_id, update_type=update_type, data=recommendations)
        return await self._deliver(self._ticket_subscribers(ticket_id), event)

    async def broadcast_confidence_update(
        self,
        ticket_id: str,
        recommendation_id: str | None,
        confidence: float,
        factors: list[str] | None = None,
    ) -> int:
        event = ConfidenceUpdateEvent(
            ticket_id=ticket_id,
            recommendation_id=recommendation_id,
            confidence=confidence,
            factors=factors or [],
        )
        return await self._deliver(self._ticket_subscribers(ticket_id), event)

    async def broadcast_pattern_update(
        self,
        org_id: str,
        patterns: OrgPatterns,
        affected_tickets: list[str] | None = None,
    ) -> int:
        affected = set(affected_tickets or [])
        with self._registry_lock:
            targets = [
                cid
                for cid, client in self._clients.items()
                if client.org_id == org_id or client.subscriptions & affected
            ]
        event = PatternUpdateEvent(org_id=org_id, patterns=patterns, affected_tickets=sorted(affected))
        return await self._deliver(targets, event)

    async def broadcast_conflict_detected(
        self,
        ticket_id: str,
        conflicts: list[Conflict],
        severity: ConflictSeverity,
    ) -> int:
        event = ConflictDetectedEvent(ticket_id=ticket_id, conflicts=conflicts, severity=severity)
        return await self._deliver(self._ticket_subscribers(ticket_id), event)

    # ----- inbound -----

    async def handle_message(self, client_id: str, raw: str | dict[str, Any]) -> None:
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            message = InboundMessage.model_validate(data)
        except (ValueError, ValidationError) as exc:
            logger.info("Invalid live update message from %s: %s", client_id, exc)
            await self._deliver([client_id], ErrorEvent(message="Invalid message format"))
            return

        if message.type in {"subscribe", "unsubscribe", "recalculate", "update"} and not message.ticket_id:
            await self._deliver([client_id], ErrorEvent(message=f"{message.type} requires ticket_id"))
            return

        if message.type == "subscribe":
            await self.subscribe(client_id, message.ticket_id, message.org_id)
        elif message.type == "unsubscribe":
            self.unsubscribe(client_id, message.ticket_id)
        elif self.on_recalculate is None:
            await self._deliver([client_id], ErrorEvent(message="Recalculation is not available"))
        else:
            try:
                result = self.on_recalculate(client_id, message)
                if inspect.isawaitable(result):
                    await result
            except ConfigAdvisorException as exc:
                await self._deliver([client_id], ErrorEvent(message=exc.message))
