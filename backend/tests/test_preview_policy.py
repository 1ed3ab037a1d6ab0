from __future__ import annotations

import unittest

from tests._bootstrap import bootstrap_backend_imports


bootstrap_backend_imports()

from bucketlens.preview.policy import (  # noqa: E402
    AUTO_PREVIEW_BYTES,
    MANUAL_PREVIEW_BYTES,
    PreviewLimits,
    blocked_message,
    decide,
    fetch_budget,
)


class DecideTests(unittest.TestCase):
    def test_unsupported_blocks_without_manual_option(self) -> None:
        policy = decide("unsupported", 10, False)
        self.assertEqual(policy.blocked_reason, "unsupported")
        self.assertFalse(policy.can_manual_load)
        self.assertIsNone(policy.load_mode)

    def test_url_handlers_ignore_size(self) -> None:
        for handler in ("image", "video", "point-cloud"):
            with self.subTest(handler=handler):
                policy = decide(handler, 50 * MANUAL_PREVIEW_BYTES, False)
                self.assertIsNone(policy.blocked_reason)
                self.assertEqual(policy.load_mode, "auto")

    def test_small_text_loads_automatically(self) -> None:
        policy = decide("text", 100, False)
        self.assertIsNone(policy.blocked_reason)
        self.assertEqual(policy.load_mode, "auto")

    def test_soft_cap_boundary_is_inclusive(self) -> None:
        self.assertEqual(decide("text", AUTO_PREVIEW_BYTES, False).load_mode, "auto")
        self.assertEqual(decide("text", AUTO_PREVIEW_BYTES + 1, False).blocked_reason, "manual")

    def test_over_soft_cap_needs_consent(self) -> None:
        policy = decide("table", 512 * 1024, False)
        self.assertEqual(policy.blocked_reason, "manual")
        self.assertTrue(policy.can_manual_load)

        policy = decide("table", 512 * 1024, True)
        self.assertIsNone(policy.blocked_reason)
        self.assertEqual(policy.load_mode, "manual")

    def test_hard_cap_wins_over_consent(self) -> None:
        for manual in (False, True):
            with self.subTest(manual=manual):
                policy = decide("text", 3 * 1024 * 1024, manual)
                self.assertEqual(policy.blocked_reason, "too-large")
                self.assertFalse(policy.can_manual_load)

    def test_hard_cap_boundary_is_inclusive(self) -> None:
        self.assertEqual(decide("markup", MANUAL_PREVIEW_BYTES, True).load_mode, "manual")

    def test_unknown_size_never_blocks(self) -> None:
        self.assertEqual(decide("text", None, False).load_mode, "auto")
        self.assertEqual(decide("text", None, True).load_mode, "manual")

    def test_custom_limits(self) -> None:
        limits = PreviewLimits(auto_load_bytes=10, max_bytes=20)
        self.assertEqual(decide("text", 11, False, limits).blocked_reason, "manual")
        self.assertEqual(decide("text", 21, True, limits).blocked_reason, "too-large")


class FetchBudgetTests(unittest.TestCase):
    def test_budget_never_exceeds_size_or_cap(self) -> None:
        self.assertEqual(fetch_budget(100, "auto"), 100)
        self.assertEqual(fetch_budget(10**9, "auto"), AUTO_PREVIEW_BYTES)
        self.assertEqual(fetch_budget(10**9, "manual"), MANUAL_PREVIEW_BYTES)

    def test_unknown_size_uses_cap(self) -> None:
        self.assertEqual(fetch_budget(None, "manual"), MANUAL_PREVIEW_BYTES)

    def test_empty_object_fetches_nothing(self) -> None:
        self.assertEqual(fetch_budget(0, "auto"), 0)


class LimitsTests(unittest.TestCase):
    def test_hard_cap_must_exceed_soft_cap(self) -> None:
        with self.assertRaises(ValueError):
            PreviewLimits(auto_load_bytes=10, max_bytes=10)


class BlockedMessageTests(unittest.TestCase):
    def test_messages(self) -> None:
        self.assertIn("on demand", blocked_message("manual"))
        self.assertEqual(
            blocked_message("too-large"),
            "Inline preview is disabled for files larger than 2 MB.",
        )
        self.assertIn("not available for this file type", blocked_message("unsupported"))
