"""
Integration tests for API endpoints.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.config.settings import reset_settings
from backend.main import app

USER_A = {"x-auth-token": "tok-a"}
USER_B = {"x-auth-token": "tok-b"}
ADMIN = {"x-auth-token": "tok-root"}

METADATA = {
    "title": "Neural Nets",
    "authors": ["Ada Lovelace"],
    "abstract": "A study of layered networks.",
    "publishYear": 2020,
}


class APITestCase(unittest.TestCase):
    """Runs the app against a fresh SQLite database per test."""

    def setUp(self):
        """Set up test client."""
        self.temp_dir = tempfile.mkdtemp()
        db_path = Path(self.temp_dir) / "api.db"
        self.env = patch.dict(os.environ, {
            "DATABASE_URL": f"sqlite:///{db_path}",
            "USER_TOKENS": "tok-a:A,tok-b:B",
            "ADMIN_TOKENS": "tok-root:root",
            "LOG_FILE": "",
        })
        self.env.start()
        reset_settings()

        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        """Stop the app and remove the database."""
        self.client.__exit__(None, None, None)
        self.env.stop()
        reset_settings()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def mark(self, paper_id="P", notes="x", headers=USER_A, metadata=METADATA, **read):
        return self.client.post(
            "/api/papers/mark-read",
            json={"id": paper_id, "metadata": metadata, "read": {"notes": notes, **read}},
            headers=headers,
        )

    def delete(self, url, body, headers):
        return self.client.request("DELETE", url, json=body, headers=headers)


class TestServiceEndpoints(APITestCase):
    """Test unauthenticated service endpoints."""

    def test_root(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "running")

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.json(), {"status": "healthy"})

    def test_version(self):
        """Test GET /api/version endpoint."""
        response = self.client.get("/api/version")
        self.assertEqual(response.status_code, 200)
        self.assertIn("api_version", response.json())


class TestAuthentication(APITestCase):
    """Test token handling."""

    def test_missing_token(self):
        response = self.client.get("/api/papers/check-paper", params={"id": "P"})
        self.assertEqual(response.status_code, 401)
        self.assertIn("No token", response.json()["detail"])

    def test_invalid_token(self):
        response = self.client.get(
            "/api/papers/check-paper", params={"id": "P"}, headers={"x-auth-token": "bogus"}
        )
        self.assertEqual(response.status_code, 401)

    def test_user_token_on_admin_endpoint(self):
        response = self.client.get("/api/admin/config", headers=USER_A)
        self.assertEqual(response.status_code, 401)

    def test_admin_token_on_user_endpoint(self):
        response = self.mark(headers=ADMIN)
        self.assertEqual(response.status_code, 401)


class TestPapersAPI(APITestCase):
    """Test paper endpoints."""

    def test_mark_read_creates_paper(self):
        """Test POST /api/papers/mark-read for a new paper."""
        response = self.mark(user="mallory")
        self.assertEqual(response.status_code, 200)

        paper = response.json()["paper"]
        self.assertEqual(paper["id"], "P")
        self.assertEqual(paper["metadata"]["publishYear"], 2020)
        self.assertEqual(len(paper["reads"]), 1)
        self.assertEqual(paper["reads"][0]["user"], "A")
        self.assertIn("entryId", paper["reads"][0])
        self.assertIn("timestamp", paper["reads"][0])

    def test_mark_read_keeps_metadata(self):
        """Second read with other metadata keeps the first."""
        self.mark()
        response = self.mark(headers=USER_B, metadata={**METADATA, "title": "Changed"})

        paper = response.json()["paper"]
        self.assertEqual(paper["metadata"]["title"], "Neural Nets")
        self.assertEqual([r["user"] for r in paper["reads"]], ["A", "B"])

    def test_mark_read_invalid_metadata(self):
        """Invalid metadata is a 400."""
        response = self.mark(metadata={**METADATA, "publishYear": 1800})
        self.assertEqual(response.status_code, 400)
        self.assertIn("publishYear", response.json()["detail"])

    def test_mark_read_missing_title(self):
        metadata = {k: v for k, v in METADATA.items() if k != "title"}
        response = self.mark(metadata=metadata)
        self.assertEqual(response.status_code, 400)

    def test_duplicate_policy_toggle(self):
        """Duplicates get 409 only while prevention is on."""
        self.mark()

        self.client.post("/api/admin/config", json={"preventDuplicateReads": True}, headers=ADMIN)
        rejected = self.mark()
        self.assertEqual(rejected.status_code, 409)
        self.assertIn("Duplicate", rejected.json()["detail"])

        self.client.post("/api/admin/config", json={"preventDuplicateReads": False}, headers=ADMIN)
        accepted = self.mark()
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(len(accepted.json()["paper"]["reads"]), 2)

    def test_check_unknown_paper(self):
        """Test GET /api/papers/check-paper for an unknown id."""
        response = self.client.get("/api/papers/check-paper", params={"id": "nope"}, headers=USER_A)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"found": False})

    def test_check_paper(self):
        """Read status is per caller; reads only with details."""
        self.mark()

        mine = self.client.get("/api/papers/check-paper", params={"id": "P"}, headers=USER_A).json()
        theirs = self.client.get(
            "/api/papers/check-paper", params={"id": "P", "details": "true"}, headers=USER_B
        ).json()

        self.assertEqual(mine["readStatus"], "read")
        self.assertNotIn("reads", mine)
        self.assertEqual(mine["metadata"]["title"], "Neural Nets")
        self.assertEqual(theirs["readStatus"], "unread")
        self.assertEqual(len(theirs["reads"]), 1)

    def test_search_papers(self):
        """Test GET /api/papers/search-papers with conjunctive filters."""
        self.mark("p1")
        self.mark("p2", headers=USER_B, metadata={**METADATA, "publishYear": 2021})

        response = self.client.get(
            "/api/papers/search-papers",
            params={"keyword": "neural", "publishYear": 2020},
            headers=USER_A,
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["totalCount"], 1)
        self.assertEqual(data["page"], 1)
        self.assertEqual(data["limit"], 10)
        self.assertEqual([p["id"] for p in data["papers"]], ["p1"])

    def test_search_pagination(self):
        for paper_id in ("p1", "p2", "p3"):
            self.mark(paper_id)

        first = self.client.get(
            "/api/papers/search-papers", params={"page": 1, "limit": 1}, headers=USER_A
        ).json()
        beyond = self.client.get(
            "/api/papers/search-papers", params={"page": 4, "limit": 1}, headers=USER_A
        ).json()

        self.assertEqual((len(first["papers"]), first["totalCount"]), (1, 3))
        self.assertEqual((beyond["papers"], beyond["totalCount"]), ([], 3))

    def test_search_by_user(self):
        self.mark("p1")
        self.mark("p2", headers=USER_B)

        data = self.client.get(
            "/api/papers/search-papers", params={"user": "B"}, headers=USER_A
        ).json()
        self.assertEqual([p["id"] for p in data["papers"]], ["p2"])

    def test_search_with_admin_token(self):
        """The admin panel searches with its own token."""
        self.mark("p1")

        response = self.client.get(
            "/api/papers/search-papers", params={"user": "A"}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["id"] for p in response.json()["papers"]], ["p1"])

    def test_search_invalid_token(self):
        response = self.client.get(
            "/api/papers/search-papers", headers={"x-auth-token": "bogus"}
        )
        self.assertEqual(response.status_code, 401)

    def test_search_invalid_limit(self):
        for params in ({"limit": 51}, {"page": 0}, {"publishYear": "abc"}):
            response = self.client.get("/api/papers/search-papers", params=params, headers=USER_A)
            self.assertEqual(response.status_code, 400, params)

    def test_remove_read_scoped(self):
        """Test DELETE /api/papers/mark-read ownership rules."""
        entry_id = self.mark().json()["paper"]["reads"][0]["entryId"]

        wrong_owner = self.delete(
            "/api/papers/mark-read", {"id": "P", "readEntryId": entry_id}, USER_B
        )
        self.assertEqual(wrong_owner.status_code, 404)

        own = self.delete("/api/papers/mark-read", {"id": "P", "readEntryId": entry_id}, USER_A)
        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json()["paper"]["reads"], [])

        again = self.delete("/api/papers/mark-read", {"id": "P", "readEntryId": entry_id}, USER_A)
        self.assertEqual(again.status_code, 404)

    def test_remove_read_missing_fields(self):
        response = self.delete("/api/papers/mark-read", {"id": "P"}, USER_A)
        self.assertEqual(response.status_code, 400)


class TestAdminAPI(APITestCase):
    """Test admin endpoints."""

    def test_get_config_default(self):
        """Test GET /api/admin/config."""
        response = self.client.get("/api/admin/config", headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"preventDuplicateReads": False})

    def test_update_config(self):
        """Test POST /api/admin/config."""
        response = self.client.post(
            "/api/admin/config", json={"preventDuplicateReads": True}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["preventDuplicateReads"])

        current = self.client.get("/api/admin/config", headers=ADMIN).json()
        self.assertTrue(current["preventDuplicateReads"])

    def test_update_config_invalid(self):
        response = self.client.post("/api/admin/config", json={}, headers=ADMIN)
        self.assertEqual(response.status_code, 400)

    def test_admin_remove_any_read(self):
        """Test DELETE /api/admin/mark-read removes another user's read."""
        self.mark()
        paper = self.mark(headers=USER_B, notes="y").json()["paper"]
        entry_id = paper["reads"][1]["entryId"]

        response = self.delete(
            "/api/admin/mark-read", {"paperId": "P", "readEntryId": entry_id}, ADMIN
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([r["user"] for r in response.json()["paper"]["reads"]], ["A"])

    def test_admin_remove_missing(self):
        response = self.delete(
            "/api/admin/mark-read", {"paperId": "P", "readEntryId": "nope"}, ADMIN
        )
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
