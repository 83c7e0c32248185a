import os
import tempfile
import time
import unittest
from unittest.mock import patch

os.environ.setdefault("CACHE_DIR", tempfile.mkdtemp(prefix="bookbrief-test-"))

from fastapi.testclient import TestClient  # noqa: E402

from bookbrief.core.config import Settings  # noqa: E402
from bookbrief.core.models import Candidate, SummaryOutcome  # noqa: E402
from bookbrief.core.orchestrator import Orchestrator  # noqa: E402
from bookbrief.web import app as app_module  # noqa: E402
from fakes import SAPIENS, FakeCatalog, FakeSummarizer  # noqa: E402

SAPIENS_CANDIDATE = Candidate(id="sap1", title="Sapiens", authors="Yuval Noah Harari")


class TestWebApp(unittest.TestCase):
    def setUp(self) -> None:
        app_module.sessions.clear()
        app_module._rate_log.clear()
        self.catalog = FakeCatalog(
            books={"Sapiens": SAPIENS},
            candidates={"Sapiens": [SAPIENS_CANDIDATE]},
        )
        self.summarizer = FakeSummarizer()
        settings = Settings(debounce_seconds=0.01)

        patches = [
            patch.object(app_module, "build_catalog", return_value=self.catalog),
            patch.object(
                app_module,
                "build_orchestrator",
                side_effect=lambda: Orchestrator(self.catalog, self.summarizer, settings),
            ),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

        self.client = TestClient(app_module.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def test_health_and_security_headers(self) -> None:
        resp = self.client.get("/health")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
        self.assertEqual(resp.headers["X-Frame-Options"], "DENY")
        self.assertEqual(resp.headers["X-Content-Type-Options"], "nosniff")

    def test_popular_books(self) -> None:
        books = self.client.get("/api/popular").json()["books"]

        self.assertEqual(len(books), 4)
        self.assertEqual(books[2]["title"], "Sapiens")

    def test_suggestions(self) -> None:
        short = self.client.get("/api/suggestions", params={"q": "Sa"}).json()
        self.assertEqual(short["status"], "not-searched")
        self.assertEqual(self.catalog.search_calls, [])

        found = self.client.get("/api/suggestions", params={"q": "Sapiens"}).json()
        self.assertEqual(found["status"], "matches")
        self.assertEqual(found["candidates"][0]["authors"], "Yuval Noah Harari")

    def test_summary_for_title(self) -> None:
        resp = self.client.get("/api/summary", params={"title": "Sapiens"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["phase"], "ready")
        self.assertEqual(data["book"]["title"], "Sapiens")
        self.assertEqual(data["book"]["categories"][0]["name"], "History")
        self.assertEqual(data["summary"]["text"], "Summary #1 of Sapiens.")
        self.assertEqual(data["summary"]["outcome"], "generated")

    def test_summary_without_title(self) -> None:
        resp = self.client.get("/api/summary")

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "no-title")

    def test_summary_not_found(self) -> None:
        resp = self.client.get("/api/summary", params={"title": "zzzznotabook1234"})

        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "not-found")
        self.assertEqual(self.summarizer.calls, [])

    def test_summary_is_rate_limited(self) -> None:
        with patch.object(app_module, "RATE_LIMIT", 1):
            first = self.client.get("/api/summary", params={"title": "Sapiens"})
            second = self.client.get("/api/summary", params={"title": "Sapiens"})

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 429)

    def test_session_flow(self) -> None:
        created = self.client.post("/api/sessions").json()
        sid = created["session_id"]
        self.assertEqual(created["phase"], "idle")

        typed = self.client.post(f"/api/sessions/{sid}/input", json={"text": "Sapiens"}).json()
        self.assertEqual(typed["phase"], "typing")

        state = typed
        for _ in range(50):
            state = self.client.get(f"/api/sessions/{sid}").json()
            if state["phase"] == "suggesting":
                break
            time.sleep(0.01)
        self.assertEqual(state["phase"], "suggesting")
        self.assertEqual(state["candidates"][0]["title"], "Sapiens")

        dismissed = self.client.post(f"/api/sessions/{sid}/dismiss").json()
        self.assertFalse(dismissed["suggestions_visible"])
        focused = self.client.post(f"/api/sessions/{sid}/focus").json()
        self.assertTrue(focused["suggestions_visible"])

        ready = self.client.post(f"/api/sessions/{sid}/suggestions/0").json()
        self.assertEqual(ready["phase"], "ready")
        self.assertEqual(ready["book"]["authors"], "Yuval Noah Harari")

        retried = self.client.post(f"/api/sessions/{sid}/retry").json()
        self.assertEqual(retried["summary"]["text"], "Summary #2 of Sapiens.")

        self.assertEqual(self.client.delete(f"/api/sessions/{sid}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/sessions/{sid}").status_code, 404)

    def test_session_open_and_popular(self) -> None:
        self.summarizer.outcomes = [SummaryOutcome.FAILED]
        sid = self.client.post("/api/sessions").json()["session_id"]

        opened = self.client.post(f"/api/sessions/{sid}/open", json={"title": "Sapiens"}).json()
        self.assertEqual(opened["phase"], "ready")
        self.assertTrue(opened["retry_available"])

        popular = self.client.post(f"/api/sessions/{sid}/popular/2").json()
        self.assertEqual(popular["title"], "Sapiens")
        self.assertEqual(
            self.client.post(f"/api/sessions/{sid}/popular/9").status_code, 404
        )

    def test_bad_content_length_is_ignored(self) -> None:
        sid = self.client.post("/api/sessions").json()["session_id"]

        resp = self.client.post(
            f"/api/sessions/{sid}/input",
            content=b'{"text": "Sapiens"}',
            headers={"content-type": "application/json", "content-length": "lots"},
        )

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["query"], "")
        self.assertEqual(resp.json()["phase"], "idle")

    def test_unknown_session(self) -> None:
        self.assertEqual(self.client.get("/api/sessions/nope").status_code, 404)
        self.assertEqual(
            self.client.post("/api/sessions/nope/input", json={"text": "x"}).status_code, 404
        )


if __name__ == "__main__":
    unittest.main()
