import unittest

from sqlalchemy import func, select

from conecta.db import ForumRow, ThreadRow
from conecta.tests.helpers import ApiTestCase

FORUM = {
    "title": "Autónomos en Alicante",
    "description": "Tips and questions about freelancing in Alicante",
    "tags": ["Tax", "IVA"],
}


class ForumTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.token, self.user = self.register(name="Ana")
        self.headers = self.auth(self.token)

    def _forum_count(self):
        with self.db.Session() as session:
            return session.execute(select(func.count(ForumRow.id))).scalar_one()

    def _create_forum(self, **overrides):
        payload = dict(FORUM, **overrides)
        response = self.client.post("/api/forums", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_create_forum(self):
        forum = self._create_forum()
        self.assertEqual(forum["user"]["id"], self.user["id"])
        self.assertEqual(forum["tags"], ["tax", "iva"])
        self.assertEqual(forum["threadCount"], 0)

    def test_duplicate_title_is_rejected(self):
        self._create_forum()
        for title in (FORUM["title"], FORUM["title"].upper()):
            response = self.client.post(
                "/api/forums", json=dict(FORUM, title=title), headers=self.headers
            )
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.json()["message"], "A forum with this title already exists"
            )
        self.assertEqual(self._forum_count(), 1)

    def test_title_and_description_length(self):
        response = self.client.post(
            "/api/forums", json=dict(FORUM, title="ab"), headers=self.headers
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/forums", json=dict(FORUM, description="short"), headers=self.headers
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._forum_count(), 0)

    def test_create_requires_auth(self):
        self.assertEqual(self.client.post("/api/forums", json=FORUM).status_code, 401)

    def test_list_reflects_new_forums(self):
        self.assertEqual(self.client.get("/api/forums").json(), [])
        forum = self._create_forum()
        listing = self.client.get("/api/forums").json()
        self.assertEqual([item["id"] for item in listing], [forum["id"]])

        self.db.set_forum_active(forum["id"], False)
        # Cached until the next write through the API.
        self.assertEqual(len(self.client.get("/api/forums").json()), 1)
        self.app.state.cache.invalidate("forums")
        self.assertEqual(self.client.get("/api/forums").json(), [])

    def test_thread_and_post_flow(self):
        forum = self._create_forum()
        thread = self.client.post(
            f"/api/forums/{forum['id']}/threads",
            json={"title": "Cuota de autónomo 2025", "content": "How much is it now?"},
            headers=self.headers,
        )
        self.assertEqual(thread.status_code, 201)
        thread_id = thread.json()["id"]
        self.assertEqual(thread.json()["postCount"], 1)

        other_token, other = self.register(name="Luis")
        post = self.client.post(
            f"/api/forums/threads/{thread_id}/posts",
            json={"content": "Around 230 euros the first year."},
            headers=self.auth(other_token),
        )
        self.assertEqual(post.status_code, 201)
        self.assertEqual(post.json()["author"]["id"], other["id"])

        detail = self.client.get(f"/api/forums/{forum['id']}").json()
        self.assertEqual([item["id"] for item in detail["threads"]], [thread_id])
        self.assertEqual(detail["threads"][0]["postCount"], 2)
        self.assertEqual(detail["threads"][0]["replyCount"], 1)
        self.assertEqual(detail["viewCount"], 1)

        thread_detail = self.client.get(f"/api/forums/threads/{thread_id}").json()
        self.assertEqual(
            [item["content"] for item in thread_detail["posts"]],
            ["How much is it now?", "Around 230 euros the first year."],
        )

    def test_only_author_deletes_thread(self):
        forum = self._create_forum()
        thread_id = self.client.post(
            f"/api/forums/{forum['id']}/threads",
            json={"title": "Question", "content": "Body"},
            headers=self.headers,
        ).json()["id"]
        other_token, _ = self.register(name="Luis")
        response = self.client.delete(
            f"/api/forums/threads/{thread_id}", headers=self.auth(other_token)
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.delete(f"/api/forums/threads/{thread_id}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.db.get_thread(thread_id))

    def test_only_creator_deletes_forum(self):
        forum = self._create_forum()
        other_token, _ = self.register(name="Luis")
        response = self.client.delete(
            f"/api/forums/{forum['id']}", headers=self.auth(other_token)
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.delete(f"/api/forums/{forum['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/forums/{forum['id']}").status_code, 404)

    def test_locked_thread_rejects_posts(self):
        forum = self._create_forum()
        thread_id = self.client.post(
            f"/api/forums/{forum['id']}/threads",
            json={"title": "Closed", "content": "Body"},
            headers=self.headers,
        ).json()["id"]
        with self.db.Session() as session:
            session.get(ThreadRow, thread_id).is_locked = True
            session.commit()
        response = self.client.post(
            f"/api/forums/threads/{thread_id}/posts",
            json={"content": "Anyone?"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

    def test_admin_deactivates_forum(self):
        forum = self._create_forum()
        self.assertEqual(
            self.client.delete(f"/api/admin/forums/{forum['id']}", headers=self.headers).status_code,
            403,
        )
        admin_token, _ = self.register_admin()
        response = self.client.delete(
            f"/api/admin/forums/{forum['id']}", headers=self.auth(admin_token)
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.db.get_forum(forum["id"]).is_active)
        self.assertEqual(self.client.get("/api/forums").json(), [])
        self.assertEqual(self.client.get(f"/api/forums/{forum['id']}").status_code, 404)

    def test_forum_updates_polling(self):
        self.assertEqual(self.client.get("/api/forums/updates").status_code, 401)
        forum = self._create_forum()
        updates = self.client.get("/api/forums/updates", headers=self.headers).json()
        self.assertEqual(updates["updates"][0]["event"], "forum_update")
        self.assertEqual(updates["updates"][0]["data"]["forum"]["id"], forum["id"])

        later = self.client.get(
            "/api/forums/updates",
            params={"since": "2999-01-01T00:00:00Z"},
            headers=self.headers,
        ).json()
        self.assertEqual(later["updates"], [])


if __name__ == "__main__":
    unittest.main()
