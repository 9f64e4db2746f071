import asyncio
import unittest
from unittest import mock

from fastapi.testclient import TestClient

from conecta.realtime import CLIENT_EVENTS, RealtimeHub, user_room
from conecta.tests.helpers import ApiTestCase


class FakeSocket:
    def __init__(self, closed=False):
        self.frames = []
        self.closed = closed

    async def send_json(self, frame):
        if self.closed:
            raise RuntimeError("socket closed")
        self.frames.append(frame)

    def events(self):
        return [frame["event"] for frame in self.frames]


class HubTests(unittest.TestCase):
    def test_room_fan_out(self):
        async def scenario():
            hub = RealtimeHub()
            first, second, outsider = FakeSocket(), FakeSocket(), FakeSocket()
            a = hub.register(first)
            b = hub.register(second)
            hub.register(outsider)
            hub.join(a, "room-1")
            hub.join(b, "room-1")
            delivered = await hub.emit_to_room("room-1", "new_message", {"content": "hola"})
            return delivered, first, second, outsider

        delivered, first, second, outsider = asyncio.run(scenario())
        self.assertEqual(delivered, 2)
        self.assertEqual(first.frames, [{"event": "new_message", "data": {"content": "hola"}}])
        self.assertEqual(second.events(), ["new_message"])
        self.assertEqual(outsider.frames, [])

    def test_empty_room_drops_event(self):
        async def scenario():
            hub = RealtimeHub()
            hub.register(FakeSocket())
            return await hub.emit_to_room("nobody-here", "forum_update", {})

        self.assertEqual(asyncio.run(scenario()), 0)

    def test_closed_sockets_are_not_counted(self):
        async def scenario():
            hub = RealtimeHub()
            hub.register(FakeSocket())
            hub.register(FakeSocket(closed=True))
            return await hub.emit_to_all("event_update", {})

        self.assertEqual(asyncio.run(scenario()), 1)

    def test_user_goes_offline_with_last_connection(self):
        async def scenario():
            hub = RealtimeHub()
            phone = hub.register(FakeSocket())
            tablet = hub.register(FakeSocket())
            hub.authenticate(phone, "u1")
            hub.authenticate(tablet, "u1")
            self.assertEqual(hub.room_members(user_room("u1")), {phone.id, tablet.id})
            self.assertEqual(hub.online_user_ids(), ["u1"])
            first = hub.unregister(phone)
            second = hub.unregister(tablet)
            return hub, first, second

        hub, first, second = asyncio.run(scenario())
        self.assertIsNone(first)
        self.assertEqual(second, "u1")
        self.assertEqual(hub.rooms, {})
        self.assertEqual(hub.online_user_ids(), [])

    def test_publish_from_worker_thread(self):
        async def scenario():
            hub = RealtimeHub()
            hub.bind(asyncio.get_running_loop())
            socket = FakeSocket()
            hub.authenticate(hub.register(socket), "u1")
            await asyncio.to_thread(
                hub.publish, "budget_update", {"type": "create"}, user_id="u1"
            )
            for _ in range(100):
                if socket.frames:
                    break
                await asyncio.sleep(0.01)
            return socket

        socket = asyncio.run(scenario())
        self.assertEqual(socket.events(), ["budget_update"])
        data = socket.frames[0]["data"]
        self.assertEqual(data["type"], "create")
        self.assertIn("timestamp", data)

    def test_publish_without_loop_is_dropped(self):
        hub = RealtimeHub()
        hub.publish("event_update", {"type": "create"})
        self.assertIsNone(hub.loop)


class WebSocketTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.token, self.user = self.register(name="Ana")
        self.room = self.client.post(
            "/api/forums",
            json={"title": "Realtime room", "description": "Room used by socket tests"},
            headers=self.auth(self.token),
        ).json()

    def _authenticate(self, ws):
        ws.send_json({"event": "authenticate", "data": {"token": self.token}})
        authenticated = ws.receive_json()
        self.assertEqual(authenticated["event"], "authenticated")
        self.assertEqual(authenticated["data"]["userId"], self.user["id"])
        status = ws.receive_json()
        self.assertEqual(status["event"], "user_status_update")
        self.assertTrue(status["data"]["isOnline"])

    def test_session(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as ws:
                self._authenticate(ws)
                self.assertTrue(self.db.get_user(self.user["id"]).is_online)

                ws.send_json({"event": "join_room", "data": {"roomId": self.room["id"]}})
                self.assertEqual(
                    ws.receive_json(),
                    {"event": "room_joined", "data": {"roomId": self.room["id"]}},
                )

                response = client.post(
                    f"/api/chat/rooms/{self.room['id']}/messages",
                    json={"content": "Sent over HTTP"},
                    headers=self.auth(self.token),
                )
                self.assertEqual(response.status_code, 201)
                frame = ws.receive_json()
                self.assertEqual(frame["event"], "new_message")
                self.assertEqual(frame["data"]["message"]["id"], response.json()["id"])

                ws.send_json(
                    {
                        "event": "send_message",
                        "data": {"roomId": self.room["id"], "content": "Sent over the socket"},
                    }
                )
                frame = ws.receive_json()
                self.assertEqual(frame["event"], "new_message")
                self.assertEqual(frame["data"]["message"]["content"], "Sent over the socket")

                ws.send_json({"event": "heartbeat"})
                self.assertEqual(ws.receive_json()["event"], "heartbeat_ack")

                ws.send_json({"event": "get_online_users"})
                online = ws.receive_json()
                self.assertEqual(online["data"]["users"], [self.user["id"]])

                ws.send_json({"event": "dance"})
                error = ws.receive_json()
                self.assertEqual(error["event"], "error")
                self.assertEqual(error["data"]["message"], "Unknown event: dance")

        contents = [message.content for message in self.db.list_room_messages(self.room["id"])]
        self.assertEqual(contents, ["Sent over HTTP", "Sent over the socket"])

    def test_private_rooms_and_auth_errors(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_json(
                    {"event": "send_message", "data": {"roomId": self.room["id"], "content": "hi"}}
                )
                self.assertEqual(ws.receive_json()["data"]["message"], "Not authenticated")

                ws.send_json({"event": "authenticate", "data": {"token": "bogus"}})
                failure = ws.receive_json()
                self.assertEqual(failure["event"], "auth_error")
                self.assertEqual(failure["data"]["message"], "Not authorized, token failed")

                ws.send_json({"event": "join_room", "data": {"roomId": user_room("someone-else")}})
                self.assertEqual(
                    ws.receive_json()["data"]["message"], "Cannot join another user's room"
                )

    def test_malformed_frames_keep_the_connection(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as ws:
                self._authenticate(ws)

                ws.send_json({"event": "join_room", "data": {"roomId": 123}})
                self.assertEqual(ws.receive_json()["data"]["message"], "roomId is required")

                ws.send_json({"event": "leave_room", "data": {"roomId": ["a"]}})
                self.assertEqual(ws.receive_json()["data"]["message"], "roomId is required")

                ws.send_json({"event": ["join_room"], "data": {}})
                self.assertEqual(ws.receive_json()["event"], "error")

                ws.send_json(
                    {"event": "send_message", "data": {"roomId": self.room["id"], "content": 42}}
                )
                error = ws.receive_json()
                self.assertEqual(error["event"], "error")
                self.assertIn("content", error["data"]["message"])

                ws.send_json(
                    {
                        "event": "send_message",
                        "data": {"roomId": self.room["id"], "content": "hola", "type": "bogus"},
                    }
                )
                error = ws.receive_json()
                self.assertEqual(error["event"], "error")
                self.assertIn("type", error["data"]["message"])

                ws.send_json(
                    {
                        "event": "send_message",
                        "data": {"roomId": self.room["id"], "content": "x" * 1001},
                    }
                )
                self.assertEqual(ws.receive_json()["event"], "error")

                ws.send_json({"event": "heartbeat"})
                self.assertEqual(ws.receive_json()["event"], "heartbeat_ack")

        self.assertEqual(self.db.list_room_messages(self.room["id"]), [])

    def test_socket_messages_use_chat_message_types(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as ws:
                self._authenticate(ws)
                ws.send_json(
                    {
                        "event": "send_message",
                        "data": {"roomId": self.room["id"], "content": "photo.png", "type": "image"},
                    }
                )
                frame = ws.receive_json()
                self.assertEqual(frame["event"], "new_message")
                self.assertEqual(frame["data"]["message"]["type"], "image")
        types = [message.type for message in self.db.list_room_messages(self.room["id"])]
        self.assertEqual(types, ["image"])

    def test_handler_failure_is_reported(self):
        async def broken(state, hub, conn, data):
            raise RuntimeError("boom")

        with mock.patch.dict(CLIENT_EVENTS, {"get_online_users": broken}):
            with TestClient(self.app) as client:
                with client.websocket_connect("/ws") as ws:
                    ws.send_json({"event": "get_online_users"})
                    error = ws.receive_json()
                    self.assertEqual(error["event"], "error")
                    self.assertEqual(error["data"]["message"], "Could not handle get_online_users")
                    ws.send_json({"event": "heartbeat"})
                    self.assertEqual(ws.receive_json()["event"], "heartbeat_ack")

    def test_budget_events_reach_private_room(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as ws:
                self._authenticate(ws)
                client.post(
                    "/api/budget",
                    json={"type": "INCOME", "category": "Grants", "amount": 500},
                    headers=self.auth(self.token),
                )
                frame = ws.receive_json()
                self.assertEqual(frame["event"], "budget_update")
                self.assertEqual(frame["data"]["entry"]["amount"], 500)


if __name__ == "__main__":
    unittest.main()
