"""Integration tests for the WebSocket and HTTP endpoints.

These drive the full stack (Starlette app, MessagePack framing, router and
session manager) through the test client.
"""

from contextlib import ExitStack

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tabu.server.app import create_app
from tabu.server.settings import GameServerSettings
from tabu.tests.helpers.factories import BUNDLED_SEED_PATH
from tabu.tests.helpers.websocket import recv_until, recv_ws, send_ws


@pytest.fixture
def client():
    settings = GameServerSettings(seed_cards_path=str(BUNDLED_SEED_PATH))
    with TestClient(create_app(settings=settings)) as client:
        yield client


class TestHttpEndpoints:
    def test_health_reports_seed_deck(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["cards"] == 30


class TestRoomFlow:
    def test_create_and_join(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            send_ws(alice, {"type": "create_room", "name": "Alice"})
            created = recv_ws(alice)
            assert created["type"] == "room_created"

            code = created["room_code"].lower()
            send_ws(bob, {"type": "join_room", "room_code": code, "name": "Bob", "team": "Team B"})
            joined = recv_ws(bob)
            assert joined["type"] == "room_joined"
            assert joined["room"]["host_id"] == created["participant_id"]

            update = recv_ws(alice)
            assert update["type"] == "room_updated"
            assert [p["name"] for p in update["room"]["participants"]] == ["Alice", "Bob"]

    def test_full_game_start_and_first_card(self, client):
        with ExitStack() as stack:
            sockets = {
                name: stack.enter_context(client.websocket_connect("/ws")) for name in ("Alice", "Bob", "Carol", "Dave")
            }
            send_ws(sockets["Alice"], {"type": "create_room", "name": "Alice"})
            code = recv_ws(sockets["Alice"])["room_code"]
            for name, team in (("Bob", "Team B"), ("Carol", "Team A"), ("Dave", "Team B")):
                send_ws(sockets[name], {"type": "join_room", "room_code": code, "name": name, "team": team})
                recv_until(sockets[name], "room_joined")

            send_ws(sockets["Alice"], {"type": "start_game"})
            for ws in sockets.values():
                turn = recv_until(ws, "turn_started")
                assert turn["describer_name"] == "Alice"

            send_ws(sockets["Alice"], {"type": "describer_ready"})
            card = recv_until(sockets["Alice"], "card_revealed")["card"]
            assert len(card["forbidden_words"]) == 5
            assert recv_until(sockets["Dave"], "card_revealed")["card"]["id"] == card["id"]

            send_ws(sockets["Carol"], {"type": "card_correct", "card_id": card["id"]})
            scored = recv_until(sockets["Bob"], "card_scored")
            assert scored["scores"] == {"Team A": 1, "Team B": 0}
            assert scored["by"] == "Carol"

    def test_rule_violation_returns_error(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "start_game"})
            response = recv_ws(ws)
            assert response == {"type": "error", "code": "not_in_room", "message": "You must join a room first"}

    def test_practice_room(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "create_room", "name": "Solo", "mode": "practice"})
            assert recv_ws(ws)["type"] == "room_created"
            started = recv_ws(ws)
            assert started["type"] == "practice_started"

            send_ws(ws, {"type": "card_skip", "card_id": started["card"]["id"]})
            assert recv_ws(ws)["stats"]["cards_skipped"] == 1


class TestProtocolErrors:
    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}

    def test_invalid_msgpack_returns_error_and_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xff\xff\xff")
            response = recv_ws(ws)
            assert response["type"] == "error"
            assert response["code"] == "invalid_message"

            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "teleport"})
            assert recv_ws(ws)["code"] == "invalid_message"

    def test_repeated_decode_errors_disconnect(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(5):
                ws.send_bytes(b"\xff\xff\xff")
                recv_ws(ws)
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004

    def test_decode_error_counter_resets_on_valid_message(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(4):
                ws.send_bytes(b"\xff\xff\xff")
                recv_ws(ws)
            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}
            for _ in range(4):
                ws.send_bytes(b"\xff\xff\xff")
                assert recv_ws(ws)["code"] == "invalid_message"
            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}

    def test_flood_is_rate_limited(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(40):
                send_ws(ws, {"type": "ping"})
            responses = [recv_ws(ws) for _ in range(40)]

        limited = [r for r in responses if r["type"] == "error"]
        assert limited
        assert all(r["code"] == "rate_limited" for r in limited)
        assert sum(r["type"] == "pong" for r in responses) >= 20

    def test_disconnect_leaves_seat_for_reconnect(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "create_room", "name": "Alice"})
            created = recv_ws(ws)

        with client.websocket_connect("/ws") as ws:
            send_ws(
                ws,
                {
                    "type": "reconnect",
                    "room_code": created["room_code"],
                    "participant_id": created["participant_id"],
                    "name": "Alice",
                },
            )
            response = recv_ws(ws)
            assert response["type"] == "reconnect_succeeded"
            assert response["participant_id"] == created["participant_id"]


class TestConfiguredFrameLimits:
    @pytest.fixture
    def strict_client(self):
        settings = GameServerSettings(
            seed_cards_path=str(BUNDLED_SEED_PATH),
            ws_message_burst=2,
            ws_messages_per_second=0.01,
            ws_max_decode_errors=2,
        )
        with TestClient(create_app(settings=settings)) as client:
            yield client

    def test_burst_from_settings(self, strict_client):
        with strict_client.websocket_connect("/ws") as ws:
            for _ in range(3):
                send_ws(ws, {"type": "ping"})
            responses = [recv_ws(ws) for _ in range(3)]

        assert [r["type"] for r in responses] == ["pong", "pong", "error"]
        assert responses[2]["code"] == "rate_limited"

    def test_decode_error_limit_from_settings(self, strict_client):
        with strict_client.websocket_connect("/ws") as ws:
            for _ in range(2):
                ws.send_bytes(b"\xc1")
                assert recv_ws(ws)["code"] == "invalid_message"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004
