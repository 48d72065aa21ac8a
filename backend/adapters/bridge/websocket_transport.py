"""
WebSocket bridge transport.

Talks to a protocol bridge process over a WebSocket using JSON frames:

    inbound:  {"event": "<name>", "data": <payload>}
    outbound: {"op": "open_session", "options": {...}}
              {"op": "send_message", "id": "<req id>", "jid": "...", "content": {...}}

The bridge acknowledges every send with
{"event": "ack", "data": {"id": "<req id>", "error": <str|null>}}.

Connection lifecycle:
- start() opens the socket, sends the handshake and spawns two tasks:
  the receive loop and the delivery loop.
- The receive loop only decodes frames. Acks resolve their pending send
  immediately; every other event is queued.
- The delivery loop emits queued events one at a time, in arrival order.
  Listeners may therefore await send_message() without blocking the
  receive loop that reads their ack.
- The bridge reports progress as `connection.update` events.
- If the socket dies without a close update, one is synthesized
  (status 428, connection closed) so the manager can react.
- The transport never reconnects by itself.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping
from uuid import uuid4

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from constants import BRIDGE_MAX_FRAME_BYTES
from observability.logger import log_event, log_exception

from session.disconnect import DisconnectReason
from session.transport import (
    CONNECTION_UPDATE,
    Transport,
    TransportError,
    TransportEvents,
    TransportOptions,
)


class WebSocketBridgeTransport(Transport):
    """
    One bridge socket == one session attempt.

    Public interface matches the Transport contract:
    - start(): open socket + handshake
    - send_message(jid, content): request/ack round trip
    - close(): drop the socket
    """

    def __init__(self, *, url: str, options: TransportOptions) -> None:
        self.ev = TransportEvents()
        self._url = url
        self._options = options

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._deliver_task: asyncio.Task[None] | None = None
        self._inbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[Any]] = {}

        self._close_reported = False
        self._closing = False

    # -------------------------------------------------------------------------
    # Transport contract
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._ws is not None:
            raise TransportError("transport already started")

        await self.ev.emit(CONNECTION_UPDATE, {"connection": "connecting"})

        try:
            self._ws = await ws_connect(
                self._url,
                max_size=BRIDGE_MAX_FRAME_BYTES,
                open_timeout=self._options.connect_timeout_ms / 1000.0,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"bridge_connect_failed: {e!r}") from e

        await self._ws.send(json.dumps({
            "op": "open_session",
            "options": self._options.to_wire(),
        }))

        # One receive loop and one delivery loop per connection
        self._ensure_delivery()
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def send_message(self, jid: str, content: Mapping[str, Any]) -> Any:
        ws = self._ws
        if ws is None:
            raise TransportError("transport not started")

        request_id = uuid4().hex
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await ws.send(json.dumps({
                "op": "send_message",
                "id": request_id,
                "jid": jid,
                "content": dict(content),
            }))
            return await asyncio.wait_for(
                future,
                timeout=self._options.default_query_timeout_ms / 1000.0,
            )
        finally:
            self._pending.pop(request_id, None)

    async def close(self) -> None:
        self._closing = True

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and not rt.done():
            rt.cancel()

        # A listener may close the transport from inside the delivery loop;
        # that loop then stops on its own after the current event.
        dt = self._deliver_task
        self._deliver_task = None
        if dt is not None and not dt.done() and dt is not asyncio.current_task():
            dt.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except ConnectionClosed:
                pass

        self._fail_pending(TransportError("transport closed"))

    # -------------------------------------------------------------------------
    # Inbound frames
    # -------------------------------------------------------------------------

    def dispatch_frame(self, raw: str | bytes) -> None:
        """
        Decode one bridge frame.

        Acks are resolved in place; every other event is queued for the
        delivery loop. Malformed frames are logged and dropped.
        """
        try:
            frame = json.loads(raw)
        except ValueError as e:
            log_exception("BRIDGE_FRAME_INVALID", e)
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            log_event({
                "event_type": "BRIDGE_FRAME_INVALID",
                "level": "error",
                "message": "frame is not an object with an event name",
            })
            return

        name: str = frame["event"]
        data = frame.get("data")

        if name == "ack":
            self._resolve_ack(data)
            return

        if name == CONNECTION_UPDATE and isinstance(data, dict):
            if data.get("connection") == "close":
                if self._close_reported:
                    return
                self._close_reported = True

        self._enqueue(name, data)

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._inbox.join()

    def _enqueue(self, name: str, data: Any) -> None:
        if self._closing:
            return
        self._ensure_delivery()
        self._inbox.put_nowait((name, data))

    def _ensure_delivery(self) -> None:
        if self._deliver_task is None and not self._closing:
            self._deliver_task = asyncio.create_task(self._deliver_loop())

    def _resolve_ack(self, data: Any) -> None:
        if not isinstance(data, dict):
            return
        future = self._pending.get(str(data.get("id")))
        if future is None or future.done():
            return
        error = data.get("error")
        if error:
            future.set_exception(TransportError(str(error)))
        else:
            future.set_result(data.get("result"))

    def _fail_pending(self, exc: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

    async def _deliver_loop(self) -> None:
        while not self._closing:
            name, data = await self._inbox.get()
            try:
                await self.ev.emit(name, data)
            finally:
                self._inbox.task_done()

    async def _recv_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        try:
            async for raw in ws:
                self.dispatch_frame(raw)
        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            log_event({
                "event_type": "BRIDGE_SOCKET_CLOSED",
                "code": e.rcvd.code if e.rcvd is not None else None,
            })

        self._fail_pending(TransportError("bridge socket closed"))

        if not self._closing and not self._close_reported:
            self._close_reported = True
            self._enqueue(CONNECTION_UPDATE, {
                "connection": "close",
                "lastDisconnect": {
                    "error": {
                        "message": "bridge socket closed",
                        "output": {
                            "statusCode": DisconnectReason.CONNECTION_CLOSED.value,
                        },
                    },
                },
            })


def bridge_transport_factory(url: str):
    """Bind a bridge URL into a TransportFactory."""
    def _factory(options: TransportOptions) -> Transport:
        return WebSocketBridgeTransport(url=url, options=options)
    return _factory
