"""
Per-connection controller for the group chat WebSocket.

A connection moves through

    CONNECTING -> AUTHENTICATING -> AUTHORIZED -> RELAYING -> CLOSED

and may jump to CLOSED from any state. Authentication and authorization
failures all look the same to the client (close with 1008) so that callers
cannot probe group membership. Malformed frames while relaying are dropped
without a reply.
"""

import enum

from pydantic import ValidationError
from starlette import status
from starlette.websockets import WebSocket, WebSocketDisconnect
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from studydino.config.managers import AsyncSessionManager
from studydino.core.chat import HistoryEvent, MessageEvent, SendMessageRequest
from studydino.core.errors import StudyDinoError
from studydino.core.uuid import UUID, parse_uuid
from studydino.service import chat as chat_service
from studydino.service import user as user_service
from studydino.service.chat import DEFAULT_HISTORY_LIMIT
from studydino.service.identity import IdentityVerifier

from .registry import SocketRegistry


class ChatState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHORIZED = "authorized"
    RELAYING = "relaying"
    CLOSED = "closed"


class ChatSession:
    """
    Drives one chat connection from handshake to teardown. Frames from the
    client are processed one at a time, so this connection's messages are
    stored and broadcast in the order it sent them.
    """

    websocket: WebSocket
    registry: SocketRegistry
    verifier: IdentityVerifier
    session_manager: AsyncSessionManager
    history_limit: int

    state: ChatState
    group_id: UUID | None
    user_id: UUID | None
    sender_name: str | None

    def __init__(
        self,
        websocket: WebSocket,
        registry: SocketRegistry,
        verifier: IdentityVerifier,
        session_manager: AsyncSessionManager,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        log: FilteringBoundLogger | None = None,
    ):
        self.websocket = websocket
        self.registry = registry
        self.verifier = verifier
        self.session_manager = session_manager
        self.history_limit = history_limit

        self.state = ChatState.CONNECTING
        self.group_id = None
        self.user_id = None
        self.sender_name = None
        self._registered = False

        self.log = (log or get_logger()).bind(client=websocket.client)

    async def run(self) -> None:
        try:
            await self.websocket.accept()

            if not await self.authenticate():
                return

            await self.start_relay()
            await self.relay()
        except WebSocketDisconnect:
            await self.log.adebug("chat.disconnected", state=self.state.value)
        finally:
            await self.teardown()

    async def reject(self, reason: str) -> None:
        """
        Close with a policy violation. The reason is only logged.
        """
        await self.log.ainfo("chat.rejected", reason=reason, state=self.state.value)
        self.state = ChatState.CLOSED
        await self.websocket.close(
            code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized"
        )

    async def authenticate(self) -> bool:
        """
        CONNECTING -> AUTHENTICATING -> AUTHORIZED. Returns False (having
        closed the connection) on any failure.
        """
        token = self.websocket.query_params.get("token") or ""
        requested = self.websocket.query_params.get("groupId") or ""

        if not token or not requested:
            await self.reject("missing_parameters")
            return False

        self.state = ChatState.AUTHENTICATING

        group_id = parse_uuid(requested)

        if group_id is None:
            await self.reject("malformed_group_id")
            return False

        self.log = self.log.bind(group_id=group_id)

        try:
            subject = await self.verifier.verify(token, log=self.log)

            async with self.session_manager.transaction() as conn:
                user = await user_service.read_by_subject(subject=subject, conn=conn)
        except StudyDinoError as e:
            await self.reject(e.kind)
            return False
        except Exception as e:
            await self.log.aexception("chat.authentication_error", error=str(e))
            await self.reject("error")
            return False

        self.log = self.log.bind(user_id=user.user_id)

        if user.current_group_id is None or user.current_group_id != group_id:
            await self.reject("not_in_group")
            return False

        self.group_id = group_id
        self.user_id = user.user_id
        self.sender_name = user.display_name
        self.state = ChatState.AUTHORIZED

        return True

    async def start_relay(self) -> None:
        """
        AUTHORIZED -> RELAYING: register, then replay recent history.
        """
        await self.registry.register(self.group_id, self.websocket)
        self._registered = True

        async with self.session_manager.transaction() as conn:
            messages = await chat_service.recent(
                group_id=self.group_id,
                conn=conn,
                log=self.log,
                limit=self.history_limit,
            )
            history = HistoryEvent(messages=[x.to_core() for x in messages])

        await self.websocket.send_text(history.model_dump_json(by_alias=True))

        self.state = ChatState.RELAYING
        await self.log.ainfo("chat.relaying", history_length=len(messages))

    async def relay(self) -> None:
        while True:
            message = await self.websocket.receive()

            if message["type"] == "websocket.disconnect":
                await self.log.adebug("chat.client_closed", code=message.get("code"))
                return

            text = message.get("text")

            if text is None:
                continue

            await self.handle_frame(text)

    async def handle_frame(self, raw: str) -> None:
        """
        Store and broadcast one client frame. Anything other than a
        `{"type": "message", "text": ...}` frame with non-empty, acceptable
        text is dropped.
        """
        try:
            request = SendMessageRequest.model_validate_json(raw)
        except ValidationError:
            await self.log.adebug("chat.frame_dropped", reason="malformed")
            return

        if not request.text.strip():
            await self.log.adebug("chat.frame_dropped", reason="empty")
            return

        try:
            async with self.session_manager.transaction() as conn:
                stored = await chat_service.append(
                    group_id=self.group_id,
                    sender_id=self.user_id,
                    text=request.text,
                    conn=conn,
                    log=self.log,
                )
        except StudyDinoError as e:
            await self.log.adebug("chat.frame_dropped", reason=e.kind)
            return
        except Exception as e:
            await self.log.aexception("chat.append_failed", error=str(e))
            return

        event = MessageEvent(message=stored.to_core(sender_name=self.sender_name))

        await self.registry.broadcast(self.group_id, event.model_dump_json(by_alias=True))

    async def teardown(self) -> None:
        """
        -> CLOSED. Unregistering is the only cleanup.
        """
        if self._registered:
            await self.registry.unregister(self.group_id, self.websocket)
            self._registered = False

        if self.state != ChatState.CLOSED:
            self.state = ChatState.CLOSED
            await self.log.adebug("chat.closed")
