from __future__ import annotations

import unittest

from tests._bootstrap import bootstrap_backend_imports, reset_caches
from tests._fakes import FakeStorage, FakeViewer


bootstrap_backend_imports()
reset_caches()

from fastapi.testclient import TestClient  # noqa: E402

from bucketlens.main import create_app  # noqa: E402
from bucketlens.preview.context import PreviewContext  # noqa: E402

BIG_LOG = b"y" * (300 * 1024)


class PreviewRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = FakeStorage(
            {
                "notes.txt": b"hello\nworld",
                "page.html": b"<h1>Hi</h1><script>alert(1)</script>",
                "big.log": BIG_LOG,
            }
        )
        self.viewer = FakeViewer()
        self.context = PreviewContext(storage=self.storage, viewer=self.viewer, default_container="bucket")
        self.client = TestClient(create_app(context=self.context))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)

    def _new_session(self) -> str:
        resp = self.client.post("/api/preview/sessions")
        self.assertEqual(resp.status_code, 200)
        return resp.json()["data"]["sessionId"]

    def _select(self, session_id: str, body: dict, *, wait: bool = True):
        return self.client.put(
            f"/api/preview/sessions/{session_id}/selection",
            params={"wait": str(wait).lower()},
            json=body,
        )

    def test_new_session_is_idle(self) -> None:
        resp = self.client.post("/api/preview/sessions")
        payload = resp.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["state"]["status"], "idle")
        self.assertEqual(payload["data"]["actions"], {"loadPreview": False, "retry": False})
        self.assertEqual(len(self.context.sessions), 1)

    def test_select_text_and_wait(self) -> None:
        session_id = self._new_session()
        resp = self._select(session_id, {"key": "notes.txt", "size": 11})

        self.assertEqual(resp.status_code, 200)
        state = resp.json()["data"]["state"]
        self.assertEqual(state["status"], "ready")
        self.assertEqual(state["handlerId"], "text")
        self.assertEqual(state["content"]["kind"], "text")
        self.assertEqual(state["content"]["text"], "hello\nworld")
        self.assertEqual(state["content"]["lineCount"], 2)
        self.assertEqual(self.storage.byte_calls, [("bucket", "notes.txt", 11)])

    def test_manual_load(self) -> None:
        session_id = self._new_session()
        resp = self._select(session_id, {"key": "big.log", "size": len(BIG_LOG)})
        data = resp.json()["data"]
        self.assertEqual(data["state"]["status"], "blocked")
        self.assertEqual(data["state"]["blockedReason"], "manual")
        self.assertTrue(data["actions"]["loadPreview"])

        resp = self.client.post(f"/api/preview/sessions/{session_id}/load", params={"wait": "true"})
        data = resp.json()["data"]
        self.assertEqual(data["state"]["status"], "ready")
        self.assertFalse(data["actions"]["loadPreview"])

    def test_load_not_offered_is_conflict(self) -> None:
        session_id = self._new_session()
        self._select(session_id, {"key": "notes.txt", "size": 11})

        resp = self.client.post(f"/api/preview/sessions/{session_id}/load")

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], 40900)

    def test_retry_after_failure(self) -> None:
        from bucketlens.preview.errors import FetchFailedError

        self.storage.errors["notes.txt"] = FetchFailedError("Failed to read object", detail="timeout")
        session_id = self._new_session()
        data = self._select(session_id, {"key": "notes.txt", "size": 11}).json()["data"]
        self.assertEqual(data["state"]["status"], "error")
        self.assertEqual(data["state"]["error"], "timeout")
        self.assertTrue(data["actions"]["retry"])

        del self.storage.errors["notes.txt"]
        resp = self.client.post(f"/api/preview/sessions/{session_id}/retry", params={"wait": "true"})
        self.assertEqual(resp.json()["data"]["state"]["status"], "ready")

    def test_markup_is_served_sandboxed(self) -> None:
        session_id = self._new_session()
        self._select(session_id, {"key": "page.html", "size": 36})

        resp = self.client.get(f"/api/preview/sessions/{session_id}/markup")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/html"))
        self.assertEqual(resp.headers["content-security-policy"], "sandbox")
        self.assertEqual(resp.headers["x-content-type-options"], "nosniff")
        self.assertIn("<h1>Hi</h1>", resp.text)

        resp = self.client.get(f"/api/preview/sessions/{session_id}/markup", params={"allowScripts": "true"})
        self.assertEqual(resp.headers["content-security-policy"], "sandbox allow-scripts")

    def test_markup_requires_ready_markup(self) -> None:
        session_id = self._new_session()
        self._select(session_id, {"key": "notes.txt", "size": 11})

        resp = self.client.get(f"/api/preview/sessions/{session_id}/markup")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], 40901)

    def test_point_cloud_viewer(self) -> None:
        session_id = self._new_session()
        data = self._select(session_id, {"key": "scene.splat", "size": 10}).json()["data"]
        self.assertEqual(data["state"]["content"]["kind"], "point-cloud")

        resp = self.client.get(f"/api/preview/sessions/{session_id}/viewer")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["content-security-policy"], "sandbox allow-scripts")
        self.assertEqual(self.viewer.urls, [data["state"]["content"]["url"]])

    def test_clear_selection(self) -> None:
        session_id = self._new_session()
        self._select(session_id, {"key": "notes.txt", "size": 11})

        resp = self.client.delete(f"/api/preview/sessions/{session_id}/selection")
        self.assertEqual(resp.json()["data"]["state"]["status"], "idle")

    def test_unknown_session(self) -> None:
        resp = self.client.get("/api/preview/sessions/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], 40400)

    def test_delete_session(self) -> None:
        session_id = self._new_session()
        resp = self.client.delete(f"/api/preview/sessions/{session_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(self.context.sessions), 0)

        resp = self.client.delete(f"/api/preview/sessions/{session_id}")
        self.assertEqual(resp.status_code, 404)

    def test_selection_validation(self) -> None:
        session_id = self._new_session()
        resp = self._select(session_id, {"key": "", "size": -1})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["code"], 42200)

    def test_request_id_is_echoed(self) -> None:
        resp = self.client.get("/health", headers={"x-request-id": "trace-123"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["x-request-id"], "trace-123")
        self.assertEqual(resp.json()["requestId"], "trace-123")
        self.assertEqual(resp.json()["data"], {"status": "ok"})


class ContainerDefaultTests(unittest.TestCase):
    def test_container_required_without_default(self) -> None:
        context = PreviewContext(storage=FakeStorage(), viewer=FakeViewer())
        with TestClient(create_app(context=context)) as client:
            session_id = client.post("/api/preview/sessions").json()["data"]["sessionId"]
            resp = client.put(f"/api/preview/sessions/{session_id}/selection", json={"key": "a.txt"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], 40001)

    def test_explicit_container_wins(self) -> None:
        storage = FakeStorage({"a.txt": b"abc"})
        context = PreviewContext(storage=storage, viewer=FakeViewer(), default_container="bucket")
        with TestClient(create_app(context=context)) as client:
            session_id = client.post("/api/preview/sessions").json()["data"]["sessionId"]
            client.put(
                f"/api/preview/sessions/{session_id}/selection?wait=true",
                json={"container": "archive", "key": "a.txt", "size": 3},
            )

        self.assertEqual(storage.byte_calls, [("archive", "a.txt", 3)])

    def test_shutdown_closes_sessions(self) -> None:
        context = PreviewContext(storage=FakeStorage(), viewer=FakeViewer())
        with TestClient(create_app(context=context)) as client:
            client.post("/api/preview/sessions")
            self.assertEqual(len(context.sessions), 1)
        self.assertEqual(len(context.sessions), 0)
