"""
Tests for the Notification Scheduler.

Covers:
- Tier expansion per severity (task counts, priorities, trigger times)
- Condition-change update notifications
- Submission, dedup suppression and cancellation of pending reminders
- Sink failures never propagate
"""

from datetime import timedelta

import pytest

from floodcast.alerting.dedup import NotificationDedup
from floodcast.alerting.notifications import (
    NotificationScheduler,
    NotificationTiers,
    build_condition_update,
    build_tasks,
)
from floodcast.alerting.schemas import NotificationKind, NotificationPriority, Severity
from tests.conftest import FailingNotificationSink


@pytest.fixture
def scheduler(sink):
    return NotificationScheduler(sink, dedup=NotificationDedup())


# ── Tier expansion ─────────────────────────────────────────────────────


class TestBuildTasks:
    def test_immediate_single_max_priority_task(self, make_alert):
        alert = make_alert(probability=0.9, lead_time_hours=0)
        tasks = build_tasks(alert, NotificationTiers())
        assert alert.severity == Severity.IMMEDIATE
        assert len(tasks) == 1
        assert tasks[0].trigger_at is None
        assert tasks[0].priority == NotificationPriority.MAX
        assert tasks[0].title.startswith("🚨 FLOOD ALERT")

    def test_urgent_now_plus_thirty_minutes(self, make_alert):
        alert = make_alert(lead_time_hours=4)
        tasks = build_tasks(alert, NotificationTiers())
        assert [t.kind for t in tasks] == [NotificationKind.FLOOD_WARNING, NotificationKind.REMINDER]
        assert tasks[0].trigger_at is None
        assert tasks[1].trigger_at == alert.created_at + timedelta(minutes=30)
        assert all(t.priority == NotificationPriority.HIGH for t in tasks)

    def test_warning_reminder_two_hours_before(self, make_alert):
        alert = make_alert(lead_time_hours=10)
        tasks = build_tasks(alert, NotificationTiers())
        assert alert.severity == Severity.WARNING
        assert len(tasks) == 2
        assert tasks[1].trigger_at == alert.created_at + timedelta(hours=8)
        assert tasks[1].priority == NotificationPriority.NORMAL

    def test_advisory_reminder_six_hours_before(self, make_alert):
        alert = make_alert(lead_time_hours=20)
        tasks = build_tasks(alert, NotificationTiers())
        assert alert.severity == Severity.ADVISORY
        assert tasks[1].trigger_at == alert.created_at + timedelta(hours=14)
        assert tasks[1].priority == NotificationPriority.LOW

    def test_non_positive_offset_skips_reminder(self, make_alert):
        alert = make_alert(lead_time_hours=10)
        tasks = build_tasks(alert, NotificationTiers(warning_reminder_lead_hours=12))
        assert len(tasks) == 1

    def test_metadata_identifies_alert(self, make_alert):
        alert = make_alert()
        task = build_tasks(alert, NotificationTiers())[0]
        assert task.metadata["alert_id"] == alert.id
        assert task.metadata["location_key"] == alert.location_key
        assert task.metadata["severity"] == "urgent"


class TestConditionUpdate:
    def test_worsened_on_probability_rise(self, make_alert):
        update = build_condition_update(make_alert(probability=0.65), make_alert(probability=0.9))
        assert update.kind == NotificationKind.CONDITION_WORSENED
        assert update.priority == NotificationPriority.HIGH

    def test_worsened_on_risk_rise_when_elevated(self, make_alert):
        update = build_condition_update(make_alert(probability=0.75), make_alert(probability=0.82))
        assert update.kind == NotificationKind.CONDITION_WORSENED

    def test_improved_on_drop_from_elevated(self, make_alert):
        update = build_condition_update(make_alert(probability=0.9), make_alert(probability=0.65))
        assert update.kind == NotificationKind.CONDITION_IMPROVED
        assert update.priority == NotificationPriority.LOW

    def test_small_change_no_update(self, make_alert):
        assert build_condition_update(make_alert(probability=0.7), make_alert(probability=0.72)) is None


# ── Scheduler ──────────────────────────────────────────────────────────


class TestScheduler:
    @pytest.mark.asyncio
    async def test_submits_every_tier_task(self, scheduler, sink, make_alert):
        alert = make_alert(lead_time_hours=4)
        scheduled = await scheduler.schedule(alert)
        assert len(scheduled) == 2
        assert len(sink.submitted) == 2
        # Only deferred tasks are tracked for cancellation
        assert len(scheduler.pending(alert.location_key)) == 1

    @pytest.mark.asyncio
    async def test_unchanged_replacement_suppressed(self, scheduler, sink, make_alert):
        first = make_alert(lead_time_hours=4)
        await scheduler.schedule(first)
        second = make_alert(lead_time_hours=4)
        assert await scheduler.schedule(second, previous=first) == []
        assert len(sink.submitted) == 2

    @pytest.mark.asyncio
    async def test_changed_replacement_cancels_pending(self, scheduler, sink, make_alert):
        first = make_alert(probability=0.65, lead_time_hours=10)
        await scheduler.schedule(first)
        old_reminder = scheduler.pending(first.location_key)[0].handle

        second = make_alert(probability=0.9, lead_time_hours=4)
        scheduled = await scheduler.schedule(second, previous=first)

        assert old_reminder in sink.cancelled
        kinds = [s.task.kind for s in scheduled]
        assert NotificationKind.CONDITION_WORSENED in kinds
        assert len(scheduler.pending(second.location_key)) == 1

    @pytest.mark.asyncio
    async def test_cancel_for_location(self, scheduler, sink, make_alert):
        alert = make_alert(lead_time_hours=20)
        await scheduler.schedule(alert)
        assert await scheduler.cancel_for_location(alert.location_key) == 1
        assert scheduler.pending(alert.location_key) == []
        assert await scheduler.cancel_for_location(alert.location_key) == 0

    @pytest.mark.asyncio
    async def test_reset_location_allows_resubmission(self, scheduler, sink, make_alert):
        alert = make_alert()
        await scheduler.schedule(alert)
        scheduler.reset_location(alert.location_key)
        assert len(await scheduler.schedule(make_alert())) == 2

    @pytest.mark.asyncio
    async def test_sink_failure_is_contained(self, make_alert):
        failing = FailingNotificationSink()
        scheduler = NotificationScheduler(failing)
        assert await scheduler.schedule(make_alert()) == []
        assert failing.attempts == 2

    @pytest.mark.asyncio
    async def test_failed_submission_not_recorded_for_dedup(self, make_alert):
        scheduler = NotificationScheduler(FailingNotificationSink())
        alert = make_alert()
        await scheduler.schedule(alert)
        suppressed, _ = scheduler.dedup.should_suppress(alert)
        assert suppressed is False

    @pytest.mark.asyncio
    async def test_send_test_notification(self, scheduler, sink):
        result = await scheduler.send_test_notification()
        assert result is not None
        assert result.task.kind == NotificationKind.TEST
        assert result.task.trigger_at is None
        assert result.handle in sink.submitted
