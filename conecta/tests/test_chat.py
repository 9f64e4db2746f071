import unittest

from conecta.tests.helpers import ApiTestCase


class ChatTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.token, self.user = self.register(name="Ana")
        self.other_token, self.other = self.register(name="Luis")
        self.room = self.client.post(
            "/api/forums",
            json={"title": "Coffee chat", "description": "General conversation room"},
            headers=self.auth(self.token),
        ).json()

    def _send(self, content, token=None):
        response = self.client.post(
            f"/api/chat/rooms/{self.room['id']}/messages",
            json={"content": content},
            headers=self.auth(token or self.token),
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def _room_listing(self, token):
        rooms = self.client.get("/api/chat/rooms", headers=self.auth(token)).json()
        return {room["id"]: room for room in rooms}

    def test_rooms_track_unread_messages(self):
        message = self._send("Hola a todos")
        self.assertEqual(message["readBy"][0]["userId"], self.user["id"])

        rooms = self._room_listing(self.other_token)
        room = rooms[self.room["id"]]
        self.assertEqual(room["name"], "Coffee chat")
        self.assertEqual(room["unreadCount"], 1)
        self.assertEqual(room["lastMessage"]["id"], message["id"])
        self.assertEqual(self._room_listing(self.token)[self.room["id"]]["unreadCount"], 0)

        messages = self.client.get(
            f"/api/chat/rooms/{self.room['id']}/messages", headers=self.auth(self.other_token)
        ).json()
        self.assertEqual([item["id"] for item in messages], [message["id"]])
        self.assertEqual(self._room_listing(self.other_token)[self.room["id"]]["unreadCount"], 0)

    def test_messages_are_returned_oldest_first(self):
        for text in ("one", "two", "three"):
            self._send(text)
        messages = self.client.get(
            f"/api/chat/rooms/{self.room['id']}/messages",
            params={"limit": 2},
            headers=self.auth(self.token),
        ).json()
        self.assertEqual([item["content"] for item in messages], ["two", "three"])

    def test_unknown_room(self):
        response = self.client.post(
            "/api/chat/rooms/missing/messages",
            json={"content": "hello"},
            headers=self.auth(self.token),
        )
        self.assertEqual(response.status_code, 404)

    def test_empty_message_is_rejected(self):
        response = self.client.post(
            f"/api/chat/rooms/{self.room['id']}/messages",
            json={"content": "   "},
            headers=self.auth(self.token),
        )
        self.assertEqual(response.status_code, 400)

    def test_search(self):
        self._send("Where do I get the NIE?")
        self._send("Try the police station", token=self.other_token)
        results = self.client.get(
            "/api/chat/search", params={"q": "nie"}, headers=self.auth(self.token)
        ).json()
        self.assertEqual([item["content"] for item in results], ["Where do I get the NIE?"])
        empty = self.client.get("/api/chat/search", headers=self.auth(self.token)).json()
        self.assertEqual(empty, [])

    def test_chat_updates_polling(self):
        message = self._send("Polling works")
        updates = self.client.get(
            "/api/chat/updates", headers=self.auth(self.other_token)
        ).json()["updates"]
        self.assertEqual(updates[0]["event"], "new_message")
        self.assertEqual(updates[0]["data"]["roomId"], self.room["id"])
        self.assertEqual(updates[0]["data"]["message"]["id"], message["id"])

    def test_deleting_forum_removes_room(self):
        self._send("Soon gone")
        self.client.delete(f"/api/forums/{self.room['id']}", headers=self.auth(self.token))
        self.assertNotIn(self.room["id"], self._room_listing(self.token))
        self.assertEqual(self.db.search_messages("gone"), [])


if __name__ == "__main__":
    unittest.main()
