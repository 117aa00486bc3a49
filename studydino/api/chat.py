"""
Group chat over a WebSocket: `/ws?token=<bearer token>&groupId=<group id>`.
"""

from fastapi import APIRouter, WebSocket
from structlog import get_logger

from studydino.realtime.session import ChatSession

chat_app = APIRouter(tags=["Chat"])


@chat_app.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    app = websocket.app

    session = ChatSession(
        websocket=websocket,
        registry=app.sockets,
        verifier=app.identity,
        session_manager=app.database,
        history_limit=app.settings.chat_history_limit,
        log=get_logger(),
    )

    await session.run()
