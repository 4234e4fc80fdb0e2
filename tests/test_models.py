"""Tests for domain model helpers and image URL resolution."""

from tradecast.domain.models import Automation, TargetStatus, TriggerType
from tradecast.notifications.media import resolve_image_url


class TestTargetStatusFromRaw:
    def test_empty_is_all_false(self):
        assert TargetStatus.from_raw(None) == TargetStatus()

    def test_legacy_keys(self):
        status = TargetStatus.from_raw({"t1": True, "t2": 1, "sl": True, "safe_book": True})
        assert status == TargetStatus(stop_loss=True, safebook=True, target_1=True, target_2=True)

    def test_canonical_key_wins_over_legacy(self):
        status = TargetStatus.from_raw({"t1": True, "target_1": False})
        assert status.target_1 is False

    def test_unknown_keys_ignored(self):
        assert TargetStatus.from_raw({"t9": True}) == TargetStatus()

    def test_round_trips_through_dict(self):
        status = TargetStatus(target_2=True)
        assert TargetStatus.from_raw(status.to_dict()) == status


def test_automation_is_due_matches_time_and_weekday():
    automation = Automation(
        name="gm",
        trigger_type=TriggerType.SCHEDULED,
        channel_id="c",
        template_id="t",
        scheduled_time="09:15",
        scheduled_days=("monday", "friday"),
    )
    assert automation.is_due("09:15", "Monday")
    assert not automation.is_due("09:16", "monday")
    assert not automation.is_due("09:15", "tuesday")


class TestResolveImageUrl:
    def test_absolute_url_passes_through(self):
        assert resolve_image_url("https://img.test/a.png", None) == "https://img.test/a.png"

    def test_relative_path_joined_to_https_base(self):
        assert (
            resolve_image_url("/uploads/a.png", "https://app.example.com")
            == "https://app.example.com/uploads/a.png"
        )

    def test_relative_path_without_base_is_dropped(self):
        assert resolve_image_url("/uploads/a.png", None) is None

    def test_localhost_base_is_rejected(self):
        assert resolve_image_url("uploads/a.png", "https://localhost:5000") is None

    def test_plain_http_base_is_rejected(self):
        assert resolve_image_url("uploads/a.png", "http://app.example.com") is None

    def test_blank_image(self):
        assert resolve_image_url("   ", "https://app.example.com") is None
