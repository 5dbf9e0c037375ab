"""Tests for deploy models, the build-id parser and the registry."""

import threading
import time
import unittest

from devflow.deploy import DeployStatus, DeploymentRecord, DeploymentRegistry, PollingLoop, ProjectDescriptor
from devflow.deploy.build_id import is_conflict, parse_build_id, parse_conflict_build_id
from tests.fakes import ManualTimerFactory


class BuildIdParserTests(unittest.TestCase):
    def test_extracts_id_after_marker(self) -> None:
        self.assertEqual(parse_conflict_build_id("pipeline is running, id: 4521, please wait"), 4521)

    def test_marker_without_space(self) -> None:
        self.assertEqual(parse_conflict_build_id("exists (id:88)"), 88)

    def test_first_match_wins(self) -> None:
        self.assertEqual(parse_conflict_build_id("id: 1 then id: 2"), 1)

    def test_unparseable_messages(self) -> None:
        for message in (None, "", "already exists", "buildId: 12", "uuid: 7", "id: abc"):
            with self.subTest(message=message):
                self.assertIsNone(parse_conflict_build_id(message))

    def test_build_id_field_coercion(self) -> None:
        self.assertEqual(parse_build_id(77), 77)
        self.assertEqual(parse_build_id(" 78 "), 78)
        for value in ("b-17", "", None, True, 1.5, {"id": 1}):
            with self.subTest(value=value):
                self.assertIsNone(parse_build_id(value))

    def test_conflict_code_accepts_int_and_str(self) -> None:
        self.assertTrue(is_conflict("409"))
        self.assertTrue(is_conflict(409))
        self.assertFalse(is_conflict(None))
        self.assertFalse(is_conflict("500"))


class DeployStatusTests(unittest.TestCase):
    def test_terminal_statuses(self) -> None:
        terminal = {s for s in DeployStatus if s.is_terminal}
        self.assertEqual(
            terminal,
            {DeployStatus.DONE, DeployStatus.ERROR, DeployStatus.ABORT, DeployStatus.JUMP},
        )

    def test_parse(self) -> None:
        self.assertEqual(DeployStatus.parse(9), DeployStatus.JUMP)
        self.assertEqual(DeployStatus.parse("2"), DeployStatus.DOING)
        self.assertIsNone(DeployStatus.parse(None))
        self.assertIsNone(DeployStatus.parse(7))


class DeploymentRecordTests(unittest.TestCase):
    def test_merge_keeps_identity(self) -> None:
        record = DeploymentRecord(build_id=5, application_name="portal-web")
        record.merge({"buildId": 999, "applicationName": "other", "status": 1})
        self.assertEqual(record.build_id, 5)
        self.assertEqual(record.application_name, "portal-web")
        self.assertEqual(record.status, DeployStatus.PREPARE)

    def test_unknown_status_does_not_clear_known_one(self) -> None:
        record = DeploymentRecord(build_id=5, application_name="portal-web", status=DeployStatus.DOING)
        record.merge({"status": 42})
        self.assertEqual(record.status, DeployStatus.DOING)

    def test_terminal_may_move_to_another_terminal(self) -> None:
        record = DeploymentRecord(build_id=5, application_name="portal-web", status=DeployStatus.ERROR)
        record.merge({"status": DeployStatus.ABORT})
        self.assertEqual(record.status, DeployStatus.ABORT)

    def test_copy_is_detached(self) -> None:
        record = DeploymentRecord(build_id=5, application_name="portal-web")
        snapshot = record.copy()
        snapshot.extra["x"] = 1
        self.assertEqual(record.extra, {})


class ProjectDescriptorTests(unittest.TestCase):
    def test_fallback_fields(self) -> None:
        project = ProjectDescriptor.from_payload({"name": "Ops", "id": 3})
        self.assertEqual(project.business_project_name, "Ops")
        self.assertEqual(project.business_project_id, "3")
        self.assertEqual(project.label, "Ops")

    def test_missing_fields(self) -> None:
        project = ProjectDescriptor.from_payload({})
        self.assertEqual(project.business_project_id, "")
        self.assertEqual(project.label, "Unknown project")


class DeploymentRegistryTests(unittest.TestCase):
    def test_one_active_record_per_application(self) -> None:
        registry = DeploymentRegistry()
        self.assertTrue(registry.add(DeploymentRecord(1, "portal-web")))
        self.assertFalse(registry.add(DeploymentRecord(2, "portal-web")))
        self.assertTrue(registry.add(DeploymentRecord(3, "admin-web")))
        self.assertEqual(registry.pending_ids(), [1, 3])

    def test_merge_reports_previous_status(self) -> None:
        registry = DeploymentRegistry()
        registry.add(DeploymentRecord(1, "portal-web"))
        previous, record = registry.merge(1, {"status": 3})
        self.assertIsNone(previous)
        self.assertEqual(record.status, DeployStatus.DONE)
        self.assertFalse(registry.has_pending())
        self.assertIsNone(registry.merge(2, {"status": 3}))

    def test_snapshot_does_not_leak_internal_records(self) -> None:
        registry = DeploymentRegistry()
        registry.add(DeploymentRecord(1, "portal-web"))
        registry.snapshot()[0].status = DeployStatus.DONE
        self.assertTrue(registry.has_pending())

    def test_remove_only_terminal(self) -> None:
        registry = DeploymentRegistry()
        registry.add(DeploymentRecord(1, "portal-web"))
        self.assertFalse(registry.remove(1))
        registry.merge(1, {"status": 4})
        self.assertTrue(registry.remove(1))
        self.assertEqual(len(registry), 0)


class PollingLoopThreadTests(unittest.TestCase):
    """Runs the loop on real timer threads with a short interval."""

    def test_runs_until_tick_reports_no_work(self) -> None:
        ticks = []
        done = threading.Event()

        def tick() -> bool:
            ticks.append(time.monotonic())
            if len(ticks) >= 3:
                done.set()
                return False
            return True

        loop = PollingLoop(tick, interval=0.01)
        loop.kick()
        self.assertTrue(done.wait(2.0))
        time.sleep(0.05)
        self.assertEqual(len(ticks), 3)
        self.assertFalse(loop.active)
        loop.cancel()

    def test_tick_errors_leave_loop_idle(self) -> None:
        done = threading.Event()

        def tick() -> bool:
            done.set()
            raise RuntimeError("boom")

        loop = PollingLoop(tick, interval=0.01)
        loop.kick()
        self.assertTrue(done.wait(2.0))
        time.sleep(0.05)
        self.assertFalse(loop.active)
        loop.cancel()

    def test_cancel_prevents_further_ticks(self) -> None:
        ticks = []
        loop = PollingLoop(lambda: ticks.append(1) or True, interval=0.01)
        loop.cancel()
        loop.kick()
        time.sleep(0.05)
        self.assertEqual(ticks, [])
        self.assertTrue(loop.closed)


class PollingLoopScheduleTests(unittest.TestCase):
    """Timer bookkeeping, driven by hand through a manual timer factory."""

    def test_kick_during_tick_keeps_immediate_timer(self) -> None:
        timers = ManualTimerFactory()
        loop = PollingLoop(lambda: loop.kick() or True, interval=20.0, timer_factory=timers)
        loop.kick()

        timers.fire_next()

        self.assertEqual([t.interval for t in timers.live], [0.0])
        self.assertTrue(loop.active)

    def test_rearm_replaces_fired_timer(self) -> None:
        timers = ManualTimerFactory()
        loop = PollingLoop(lambda: True, interval=20.0, timer_factory=timers)
        loop.kick()

        timers.fire_next()

        self.assertEqual([t.interval for t in timers.live], [20.0])
        self.assertEqual(len(timers.timers), 2)

    def test_cancel_during_tick_stops_rearm(self) -> None:
        timers = ManualTimerFactory()
        loop = PollingLoop(lambda: loop.cancel() or True, interval=20.0, timer_factory=timers)
        loop.kick()

        timers.fire_next()

        self.assertEqual(timers.live, [])
        self.assertFalse(loop.active)


if __name__ == "__main__":
    unittest.main()
