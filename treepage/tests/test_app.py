import random
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from treepage.app import create_app
from treepage.config import Settings
from treepage.db import InMemoryStoreClient, JsonFileStoreClient
from treepage.dependencies import get_photo_storage, get_short_id_rng, get_store_client
from treepage.errors import StorageIOError

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FailingSaveStoreClient(InMemoryStoreClient):
    def save(self, store):
        raise StorageIOError("disk full")


class ExplodingStoreClient(InMemoryStoreClient):
    def load(self):
        raise RuntimeError("secret internals")


class CorruptPathPhotoStorage:
    def save_photos(self, username, files):
        return []

    def delete_photo(self, url_path):
        raise ValueError("embedded null byte")


class TreePageApiTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = Settings(root_dir=self.root)
        self.app = create_app(self.settings)
        self.app.dependency_overrides[get_short_id_rng] = lambda: random.Random(7)
        self.client = TestClient(self.app)

    def tearDown(self):
        self._tmp.cleanup()

    def _configure(self, username, blessing="hello", files=None):
        return self.client.post(
            f"/api/config/{username}",
            data={"blessing": blessing},
            files=files or [],
        )

    def _png(self, name="photo.png"):
        return ("photos", (name, PNG_BYTES, "image/png"))

    def test_update_then_get_profile(self):
        response = self._configure("Alice ", files=[self._png()])
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["ok"])
        self.assertEqual(payload["username"], "alice")
        self.assertEqual(payload["blessing"], "hello")
        self.assertEqual(len(payload["photos"]), 1)
        self.assertTrue(payload["photos"][0].startswith("/uploads/photos/alice/"))
        self.assertTrue(payload["photos"][0].endswith(".png"))
        self.assertEqual(len(payload["shortId"]), 6)
        self.assertEqual(payload["shortUrl"], f"/u/{payload['shortId']}")

        fetched = self.client.get("/api/user/alice")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(
            fetched.json(),
            {
                "username": "alice",
                "blessing": "hello",
                "photos": payload["photos"],
                "shortId": payload["shortId"],
            },
        )

    def test_profile_is_persisted_to_json_file(self):
        self._configure("bob", blessing="hi")
        store = JsonFileStoreClient(self.root / "data" / "users.json").load()
        profile = store.get_profile("bob")
        self.assertIsNotNone(profile)
        self.assertEqual(store.resolve_short_id(profile.short_id), "bob")

    def test_uploaded_photo_is_served(self):
        payload = self._configure("alice", files=[self._png()]).json()
        response = self.client.get(payload["photos"][0])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, PNG_BYTES)

    def test_short_link_redirects_to_profile_page(self):
        short_id = self._configure("Alice ").json()["shortId"]
        response = self.client.get(f"/u/{short_id}", follow_redirects=False)
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.headers["location"], "/tree.html?user=alice")

    def test_unknown_short_link(self):
        response = self.client.get("/u/zzzzzz", follow_redirects=False)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "Invalid link")

    def test_unknown_user(self):
        response = self.client.get("/api/user/nobody")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "User not found"})

    def test_blank_username_rejected(self):
        response = self._configure("%20%20")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Username is required"})

    def test_photos_append_and_short_id_is_stable(self):
        first = self._configure("carol", files=[self._png("a.png")]).json()
        second = self._configure(
            "carol", blessing="again", files=[self._png("b.jpeg")]
        ).json()
        self.assertEqual(second["shortId"], first["shortId"])
        self.assertEqual(second["blessing"], "again")
        self.assertEqual(second["photos"][0], first["photos"][0])
        self.assertEqual(len(second["photos"]), 2)
        self.assertTrue(second["photos"][1].endswith(".jpeg"))

    def test_short_ids_are_unique_across_profiles(self):
        # Every request gets an identically seeded source, forcing collisions.
        ids = {self._configure(f"user{i}").json()["shortId"] for i in range(5)}
        self.assertEqual(len(ids), 5)

    def test_missing_extension_defaults_to_jpg(self):
        payload = self._configure("dave", files=[self._png("noext")]).json()
        self.assertTrue(payload["photos"][0].endswith(".jpg"))

    def test_non_image_upload_rejects_whole_batch(self):
        self._configure("erin", files=[self._png()])
        before = self.client.get("/api/user/erin").json()["photos"]

        response = self._configure(
            "erin",
            files=[self._png("ok.png"), ("photos", ("notes.txt", b"text", "text/plain"))],
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Only image uploads are allowed"})
        self.assertEqual(self.client.get("/api/user/erin").json()["photos"], before)
        user_dir = self.root / "uploads" / "photos" / "erin"
        self.assertEqual(len(list(user_dir.iterdir())), 1)

    def test_too_many_files(self):
        files = [self._png(f"{i}.png") for i in range(21)]
        response = self._configure("frank", files=files)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Too many files"})

    def test_delete_photo_removes_entry_and_file(self):
        files = [self._png("1.png"), self._png("2.png"), self._png("3.png")]
        photos = self._configure("gina", files=files).json()["photos"]

        response = self.client.post(
            "/api/delete-photo/Gina", json={"photoUrl": photos[1]}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(), {"ok": True, "message": "Photo deleted successfully"}
        )
        remaining = self.client.get("/api/user/gina").json()["photos"]
        self.assertEqual(remaining, [photos[0], photos[2]])
        self.assertFalse((self.root / photos[1].lstrip("/")).exists())
        self.assertTrue((self.root / photos[0].lstrip("/")).exists())

    def test_delete_photo_missing_on_disk_still_succeeds(self):
        photos = self._configure("hank", files=[self._png()]).json()["photos"]
        (self.root / photos[0].lstrip("/")).unlink()
        response = self.client.post(
            "/api/delete-photo/hank", json={"photoUrl": photos[0]}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/user/hank").json()["photos"], [])

    def test_delete_unknown_photo(self):
        photos = self._configure("ivy", files=[self._png()]).json()["photos"]
        response = self.client.post(
            "/api/delete-photo/ivy", json={"photoUrl": "/uploads/photos/ivy/nope.png"}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(), {"ok": False, "error": "Photo not found in user data"}
        )
        self.assertEqual(self.client.get("/api/user/ivy").json()["photos"], photos)

    def test_delete_photo_for_unknown_user(self):
        response = self.client.post(
            "/api/delete-photo/ghost", json={"photoUrl": "/uploads/photos/x.png"}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"ok": False, "error": "User not found"})

    def test_empty_file_input_is_ignored(self):
        photos = self._configure("lena", files=[self._png()]).json()["photos"]
        boundary = "treepageboundary"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="blessing"\r\n\r\n'
            "hello again\r\n"
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="photos"; filename=""\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
            "\r\n"
            f"--{boundary}--\r\n"
        ).encode("utf-8")
        response = self.client.post(
            "/api/config/lena",
            content=body,
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["blessing"], "hello again")
        self.assertEqual(response.json()["photos"], photos)

    def test_delete_photo_accepts_form_body(self):
        photos = self._configure("mona", files=[self._png()]).json()["photos"]
        response = self.client.post(
            "/api/delete-photo/mona", data={"photoUrl": photos[0]}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/user/mona").json()["photos"], [])
        self.assertFalse((self.root / photos[0].lstrip("/")).exists())

    def test_delete_photo_malformed_body(self):
        self._configure("nina", files=[self._png()])
        for content in (b"{not json", b"[1, 2]", b'{"photoUrl": 5}'):
            response = self.client.post(
                "/api/delete-photo/nina",
                content=content,
                headers={"Content-Type": "application/json"},
            )
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.json(), {"ok": False, "error": "Invalid request"}
            )

    def test_delete_photo_ignores_file_removal_value_error(self):
        photos = self._configure("olga", files=[self._png()]).json()["photos"]
        self.app.dependency_overrides[get_photo_storage] = CorruptPathPhotoStorage
        response = self.client.post(
            "/api/delete-photo/olga", json={"photoUrl": photos[0]}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/user/olga").json()["photos"], [])

    def test_delete_photo_requires_photo_url(self):
        self._configure("jill")
        for kwargs in ({}, {"json": {}}):
            response = self.client.post("/api/delete-photo/jill", **kwargs)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.json(), {"ok": False, "error": "Photo URL is required"}
            )

    def test_store_write_failure_is_opaque_500(self):
        self.app.dependency_overrides[get_store_client] = FailingSaveStoreClient
        response = self._configure("kate")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal server error"})

    def test_unexpected_error_does_not_leak_detail(self):
        self.app.dependency_overrides[get_store_client] = ExplodingStoreClient
        client = TestClient(self.app, raise_server_exceptions=False)
        response = client.get("/api/user/anyone")
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("secret", response.text)

    def test_site_root_serves_static_assets(self):
        (self.root / "tree.html").write_text("<html>tree</html>", encoding="utf-8")
        response = self.client.get("/tree.html")
        self.assertEqual(response.status_code, 200)
        self.assertIn("tree", response.text)


if __name__ == "__main__":
    unittest.main()
