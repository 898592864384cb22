from __future__ import annotations

from conftest import (
    CRASH_REPORT_TASK,
    LOGON_REPORT_TASK,
    MONITOR_TASK,
    TELEMETRY_SERVICE,
    FakeServiceManager,
    FakeTaskScheduler,
)

from nvtelemetry.matcher import ArtifactMatcher, match_services, match_tasks
from nvtelemetry.models import (
    ArtifactKind,
    LogicalState,
    MatchMode,
    ServiceRecord,
    SignaturePattern,
    TaskRecord,
)
from nvtelemetry.signatures import DEFAULT_SIGNATURES


def test_exact_and_contains_signatures_each_match_once() -> None:
    signatures = (
        SignaturePattern(ArtifactKind.SERVICE, MatchMode.EXACT, "NvTelemetryContainer"),
        SignaturePattern(ArtifactKind.SERVICE, MatchMode.CONTAINS, "telemetry"),
    )
    records = [
        ServiceRecord("NvTelemetryContainer", "NVIDIA Telemetry Container", "automatic", "running"),
        ServiceRecord("VendorTelemetryAgent", "Vendor agent", "manual", "stopped"),
        ServiceRecord("Spooler", "Print Spooler", "automatic", "running"),
    ]

    found = list(match_services(records, signatures))

    assert [a.identifier for a in found] == ["NvTelemetryContainer", "VendorTelemetryAgent"]
    assert all(a.kind is ArtifactKind.SERVICE for a in found)


def test_matching_is_case_insensitive_and_deduplicated() -> None:
    records = [
        ServiceRecord("nvtelemetrycontainer", "lower", "automatic", "running"),
        ServiceRecord("NVTELEMETRYCONTAINER", "upper", "automatic", "running"),
    ]

    found = list(match_services(records, DEFAULT_SIGNATURES))

    assert len(found) == 1
    assert found[0].display_name == "lower"


def test_task_path_prefix_ignores_other_folders() -> None:
    records = [
        TaskRecord(MONITOR_TASK, True),
        TaskRecord("\\Vendor\\NvTmMon_copy", True),
        TaskRecord(CRASH_REPORT_TASK, False),
    ]

    found = list(match_tasks(records, DEFAULT_SIGNATURES))

    assert [a.identifier for a in found] == [MONITOR_TASK, CRASH_REPORT_TASK]
    assert found[0].state is LogicalState.ENABLED
    assert found[1].state is LogicalState.DISABLED
    assert found[1].display_name == CRASH_REPORT_TASK.lstrip("\\")


def test_service_patterns_do_not_match_tasks() -> None:
    records = [TaskRecord("\\NvTelemetryContainer", True)]
    only_services = [p for p in DEFAULT_SIGNATURES if p.kind is ArtifactKind.SERVICE]

    assert list(match_tasks(records, only_services)) == []


def test_matcher_finds_default_telemetry(service_manager, task_scheduler) -> None:
    matcher = ArtifactMatcher(service_manager, task_scheduler)

    services = list(matcher.find_telemetry_services())
    tasks = list(matcher.find_telemetry_tasks())

    assert [s.identifier for s in services] == [TELEMETRY_SERVICE]
    assert services[0].state is LogicalState.ENABLED
    assert [t.identifier for t in tasks] == [CRASH_REPORT_TASK, MONITOR_TASK, LOGON_REPORT_TASK]


def test_no_match_is_an_empty_sequence() -> None:
    matcher = ArtifactMatcher(
        FakeServiceManager([ServiceRecord("Spooler", "Print Spooler", "automatic", "running")]),
        FakeTaskScheduler([]),
    )

    assert list(matcher.find_telemetry_services()) == []
    assert list(matcher.find_telemetry_tasks()) == []


def test_every_call_re_enumerates(service_manager, task_scheduler) -> None:
    matcher = ArtifactMatcher(service_manager, task_scheduler)
    assert len(list(matcher.find_telemetry_services())) == 1

    service_manager.vanish(TELEMETRY_SERVICE)
    assert list(matcher.find_telemetry_services()) == []

    service_manager.records["nvtelemetrycontainer"] = ServiceRecord(
        TELEMETRY_SERVICE, "NVIDIA Telemetry Container", "disabled", "stopped"
    )
    again = list(matcher.find_telemetry_services())
    assert again[0].state is LogicalState.DISABLED


def test_unreadable_service_is_reported_as_unknown(service_manager, task_scheduler) -> None:
    service_manager.unreadable.add(TELEMETRY_SERVICE.lower())
    matcher = ArtifactMatcher(service_manager, task_scheduler)

    services = list(matcher.find_telemetry_services())

    assert len(services) == 1
    assert services[0].state is LogicalState.UNKNOWN
