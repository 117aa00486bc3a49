"""
Tests the group chat WebSocket end to end.
"""

import pytest
import structlog
from starlette.websockets import WebSocketDisconnect

from studydino.core.uuid import UUID, uuid7
from studydino.service import chat as chat_service


def socket_url(token: str, group_id: str) -> str:
    return f"/ws?token={token}&groupId={group_id}"


def assert_rejected(client, url: str):
    with client.websocket_connect(url) as websocket:
        with pytest.raises(WebSocketDisconnect) as e:
            websocket.receive_json()

        assert e.value.code == 1008


def create_group(client, headers, group_body) -> str:
    response = client.post("/groups", json=group_body(), headers=headers)
    assert response.status_code == 201
    return response.json()["data"]["id"]


def test_scenario(client, sign_in, group_body):
    a_token, a_headers, a_id = sign_in("Ada", "Lovelace")
    b_token, b_headers, b_id = sign_in("Bob", "Builder")

    group_id = create_group(client, a_headers, group_body)

    response = client.post(f"/groups/{group_id}/join", headers=b_headers)
    assert response.status_code == 200

    with client.websocket_connect(socket_url(a_token, group_id)) as a_socket:
        assert a_socket.receive_json() == {"type": "history", "messages": []}

        with client.websocket_connect(socket_url(b_token, group_id)) as b_socket:
            assert b_socket.receive_json() == {"type": "history", "messages": []}

            b_socket.send_json({"type": "message", "text": "hi"})

            for socket in [a_socket, b_socket]:
                frame = socket.receive_json()

                assert frame["type"] == "message"
                assert frame["message"]["text"] == "hi"
                assert frame["message"]["senderName"] == "Bob Builder"
                assert frame["message"]["senderId"] == b_id
                assert set(frame["message"]) == {
                    "id",
                    "text",
                    "createdAt",
                    "senderId",
                    "senderName",
                }

        # B is gone; A keeps relaying
        a_socket.send_json({"type": "message", "text": "anyone?"})
        frame = a_socket.receive_json()
        assert frame["message"]["text"] == "anyone?"
        assert frame["message"]["senderName"] == "Ada Lovelace"

    response = client.post(f"/groups/{group_id}/leave", headers=b_headers)
    assert response.status_code == 200
    assert response.json()["data"]["memberIds"] == [a_id]

    response = client.get("/me", headers=b_headers)
    assert response.json()["data"]["currentGroupId"] is None

    response = client.post(f"/groups/{group_id}/leave", headers=a_headers)
    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "conflict"

    # B is no longer authorized for the chat, and history survives for A
    assert_rejected(client, socket_url(b_token, group_id))

    with client.websocket_connect(socket_url(a_token, group_id)) as a_socket:
        history = a_socket.receive_json()
        assert [m["text"] for m in history["messages"]] == ["hi", "anyone?"]


def test_history_replay(client, sign_in, group_body):
    token, headers, user_id = sign_in("Hal")
    group_id = create_group(client, headers, group_body)

    async def seed():
        async with client.app.database.transaction() as conn:
            for i in range(25):
                await chat_service.append(
                    group_id=UUID(group_id),
                    sender_id=UUID(user_id),
                    text=f"message {i}",
                    conn=conn,
                    log=structlog.get_logger(),
                )

    client.portal.call(seed)

    with client.websocket_connect(socket_url(token, group_id)) as websocket:
        history = websocket.receive_json()

        assert history["type"] == "history"
        assert [m["text"] for m in history["messages"]] == [
            f"message {i}" for i in range(5, 25)
        ]
        assert {m["senderName"] for m in history["messages"]} == {"Hal"}


def test_malformed_frames_are_dropped(client, sign_in, group_body):
    token, headers, _ = sign_in("Mal")
    group_id = create_group(client, headers, group_body)

    with client.websocket_connect(socket_url(token, group_id)) as websocket:
        websocket.receive_json()

        websocket.send_text("not json")
        websocket.send_json({"type": "typing"})
        websocket.send_json({"text": "no type"})
        websocket.send_json({"type": "message", "text": "   "})
        websocket.send_json({"type": "message", "text": "x" * 1001})
        websocket.send_bytes(b"binary")
        websocket.send_json({"type": "message", "text": "  hello  "})

        frame = websocket.receive_json()

        assert frame["type"] == "message"
        assert frame["message"]["text"] == "hello"


def test_rejected_connections(client, sign_in, group_body, make_token):
    token, headers, _ = sign_in("Rex")
    group_id = create_group(client, headers, group_body)

    outsider_token, _, _ = sign_in("Out")

    for url in [
        "/ws",
        f"/ws?groupId={group_id}",
        f"/ws?token={token}",
        socket_url(token, "not-a-group"),
        socket_url(token, str(uuid7())),
        socket_url("garbage", group_id),
        socket_url(make_token("auth0|never-seen"), group_id),
        socket_url(make_token("auth0|x", issuer="https://evil.test/"), group_id),
        socket_url(outsider_token, group_id),
    ]:
        assert_rejected(client, url)

    # The rightful member still gets in
    with client.websocket_connect(socket_url(token, group_id)) as websocket:
        assert websocket.receive_json()["type"] == "history"
