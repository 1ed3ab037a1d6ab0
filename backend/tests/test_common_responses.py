from __future__ import annotations

import unittest

from tests._bootstrap import bootstrap_backend_imports, reset_caches


bootstrap_backend_imports()
reset_caches()

from bucketlens.common.request_context import (  # noqa: E402
    MAX_REQUEST_ID_LENGTH,
    get_request_id,
    normalize_request_id,
    request_id_scope,
)
from bucketlens.common.responses import ApiResponse  # noqa: E402
from bucketlens.common.schemas import CamelModel, to_camel  # noqa: E402


class ApiResponseTests(unittest.TestCase):
    def test_ok_defaults(self) -> None:
        r = ApiResponse.ok({"a": 1})
        self.assertTrue(r.success)
        self.assertEqual(r.code, 0)
        self.assertEqual(r.message, "OK")
        self.assertEqual(r.data, {"a": 1})
        self.assertIsNone(r.request_id)

    def test_fail_carries_scoped_request_id(self) -> None:
        with request_id_scope("req-1"):
            r = ApiResponse.fail(code=40900, message="Bad", data={"x": 2})
        self.assertFalse(r.success)
        self.assertEqual(r.code, 40900)
        self.assertEqual(r.request_id, "req-1")
        self.assertEqual(r.to_wire()["requestId"], "req-1")
        self.assertIsNone(get_request_id())


class RequestIdTests(unittest.TestCase):
    def test_keeps_client_id(self) -> None:
        self.assertEqual(normalize_request_id("  abc-123 "), "abc-123")

    def test_mints_id_for_missing_or_bad_values(self) -> None:
        for value in (None, "", "x" * (MAX_REQUEST_ID_LENGTH + 1), "a\nb"):
            minted = normalize_request_id(value)
            self.assertEqual(len(minted), 32)
            self.assertNotEqual(minted, value)


class ToCamelTests(unittest.TestCase):
    def test_to_camel_basic(self) -> None:
        self.assertEqual(to_camel("can_manual_load"), "canManualLoad")

    def test_to_camel_ignores_empty_segments(self) -> None:
        self.assertEqual(to_camel("a__b"), "aB")

    def test_camel_model_accepts_both_names(self) -> None:
        class M(CamelModel):
            is_folder: bool

        self.assertTrue(M.model_validate({"isFolder": True}).is_folder)
        self.assertTrue(M(is_folder=True).is_folder)
        self.assertEqual(M(is_folder=False).to_wire(), {"isFolder": False})
