from __future__ import annotations

import pytest

from analysis_provider import AnalysisFailure, AnalysisOutcome, AnalysisProviderRequest, DeterministicAnalysisProvider
from persistence.snapshot import Snapshot, encode_snapshot
from persistence.store import InMemorySnapshotStore
from view_flow import (
    DashboardSession,
    ViewEvent,
    ViewState,
    available_events,
    initial_view_state,
    transition,
)
from wealth_model import FALLBACK_ANALYSIS, AnalysisResult, InputRecord, Insight


class FailingProvider:
    name = "failing"

    def __init__(self, failure: AnalysisFailure = AnalysisFailure.TRANSPORT):
        self.failure = failure
        self.calls = 0

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        self.calls += 1
        return AnalysisOutcome.failed(self.name, self.failure, "boom")


class RecordingProvider:
    name = "recording"

    def __init__(self, result: AnalysisResult):
        self.result = result
        self.requests: list[AnalysisProviderRequest] = []
        self.session: DashboardSession | None = None
        self.nested_outcome: AnalysisOutcome | None = None

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        self.requests.append(request)
        if self.session is not None:
            self.nested_outcome = await self.session.request_analysis(self)
        return AnalysisOutcome.success(self.name, self.result)


SAMPLE_RESULT = AnalysisResult(
    headline="Calm money, clear plan",
    insights=(Insight(title="Nice buffer", body="Cash is above the floor.", type="celebrate"),),
    one_move="Keep going.",
)


@pytest.mark.parametrize(
    "state, event, expected",
    [
        (ViewState.LANDING, ViewEvent.BEGIN, ViewState.PHILOSOPHY),
        (ViewState.PHILOSOPHY, ViewEvent.BUILD_SYSTEM, ViewState.SETUP),
        (ViewState.PHILOSOPHY, ViewEvent.BACK, ViewState.LANDING),
        (ViewState.SETUP, ViewEvent.SHOW_DASHBOARD, ViewState.DASHBOARD),
        (ViewState.SETUP, ViewEvent.BACK, ViewState.PHILOSOPHY),
        (ViewState.DASHBOARD, ViewEvent.EDIT, ViewState.SETUP),
    ],
)
def test_transition_follows_the_flow(state, event, expected):
    assert transition(state, event) is expected


@pytest.mark.parametrize("state", list(ViewState))
def test_reset_returns_to_landing_from_any_state(state):
    assert transition(state, ViewEvent.RESET) is ViewState.LANDING


def test_unavailable_events_leave_state_unchanged():
    assert transition(ViewState.LANDING, ViewEvent.EDIT) is ViewState.LANDING
    assert transition(ViewState.DASHBOARD, ViewEvent.BEGIN) is ViewState.DASHBOARD
    assert transition(ViewState.LANDING, ViewEvent.BACK) is ViewState.LANDING


def test_available_events_always_include_reset():
    assert available_events(ViewState.DASHBOARD) == [ViewEvent.EDIT, ViewEvent.RESET]
    assert ViewEvent.RESET in available_events(ViewState.LANDING)


def test_initial_state_depends_on_stored_name():
    assert initial_view_state(None) is ViewState.LANDING
    assert initial_view_state(Snapshot(form=InputRecord(name="  "))) is ViewState.LANDING
    assert initial_view_state(Snapshot(form=InputRecord(name="Sam"))) is ViewState.DASHBOARD


def test_restore_without_snapshot_starts_on_landing_and_writes_nothing():
    store = InMemorySnapshotStore()
    session = DashboardSession(store)

    assert session.restore() is ViewState.LANDING
    assert session.form == InputRecord()
    assert session.analysis is None
    assert store.store_count == 0


def test_restore_with_named_snapshot_opens_dashboard(sample_form):
    store = InMemorySnapshotStore(encode_snapshot(Snapshot(form=sample_form, analysis=SAMPLE_RESULT)))
    session = DashboardSession(store)

    assert session.restore() is ViewState.DASHBOARD
    assert session.form == sample_form
    assert session.analysis == SAMPLE_RESULT


def test_restore_fills_missing_fields_with_defaults():
    store = InMemorySnapshotStore({"form": {"name": "Sam", "income": "90000"}, "analysis": None})
    session = DashboardSession(store)

    session.restore()

    assert session.form.name == "Sam"
    assert session.form.frequency == "annual"
    assert session.form.vesting_months == "48"


def test_corrupt_snapshot_starts_fresh():
    store = InMemorySnapshotStore({"form": "not-a-form"})
    session = DashboardSession(store)

    assert session.restore() is ViewState.LANDING
    assert session.form == InputRecord()


def test_edits_are_not_persisted_before_dashboard():
    store = InMemorySnapshotStore()
    session = DashboardSession(store)
    session.restore()

    session.dispatch(ViewEvent.BEGIN)
    session.dispatch(ViewEvent.BUILD_SYSTEM)
    session.update_field("name", "Sam")
    session.update_field("income", "120000")

    assert store.store_count == 0
    assert store.load() is None


def test_edits_are_not_persisted_before_restore_completes():
    store = InMemorySnapshotStore()
    session = DashboardSession(store)
    session.state = ViewState.DASHBOARD

    session.update_field("name", "Sam")

    assert store.store_count == 0


def test_reaching_dashboard_persists_and_later_edits_follow():
    store = InMemorySnapshotStore()
    session = DashboardSession(store)
    session.restore()
    for event in (ViewEvent.BEGIN, ViewEvent.BUILD_SYSTEM):
        session.dispatch(event)
    session.update_field("name", "Sam")

    session.dispatch(ViewEvent.SHOW_DASHBOARD)
    assert store.load().form.name == "Sam"

    session.update_field("cash", "5000")
    assert store.load().form.cash == "5000"


def test_unchanged_field_does_not_write():
    store = InMemorySnapshotStore()
    session = DashboardSession(store)
    session.restore()
    session.state = ViewState.DASHBOARD

    session.update_field("cash", "100")
    session.update_field("cash", "100")

    assert store.store_count == 1


def test_update_field_rejects_unknown_names():
    session = DashboardSession(InMemorySnapshotStore())

    with pytest.raises(KeyError):
        session.update_field("salary", "1")


def test_reset_clears_store_and_returns_to_landing(sample_form):
    store = InMemorySnapshotStore(encode_snapshot(Snapshot(form=sample_form, analysis=SAMPLE_RESULT)))
    session = DashboardSession(store)
    session.restore()

    assert session.reset() is ViewState.LANDING
    assert store.load() is None
    assert session.form == InputRecord()
    assert session.analysis is None

    fresh = DashboardSession(store)
    assert fresh.restore() is ViewState.LANDING


@pytest.mark.anyio
async def test_request_analysis_stores_result_and_persists(sample_form):
    store = InMemorySnapshotStore(encode_snapshot(Snapshot(form=sample_form)))
    session = DashboardSession(store)
    session.restore()
    provider = RecordingProvider(SAMPLE_RESULT)

    outcome = await session.request_analysis(provider)

    assert outcome.ok
    assert session.analysis == SAMPLE_RESULT
    assert store.load().analysis == SAMPLE_RESULT
    assert provider.requests[0].form == sample_form
    assert provider.requests[0].metrics == session.metrics
    assert provider.requests[0].request_id
    assert session.analysis_in_flight is False


@pytest.mark.anyio
async def test_request_analysis_failure_applies_fallback(sample_form):
    store = InMemorySnapshotStore(encode_snapshot(Snapshot(form=sample_form, analysis=SAMPLE_RESULT)))
    session = DashboardSession(store)
    session.restore()

    outcome = await session.request_analysis(FailingProvider())

    assert outcome.failure is AnalysisFailure.TRANSPORT
    assert session.analysis == FALLBACK_ANALYSIS
    assert store.load().analysis == FALLBACK_ANALYSIS


@pytest.mark.anyio
async def test_overlapping_request_is_rejected_without_calling_provider(sample_form):
    session = DashboardSession(InMemorySnapshotStore())
    session.restore()
    session.form = sample_form
    provider = RecordingProvider(SAMPLE_RESULT)
    provider.session = session

    outcome = await session.request_analysis(provider)

    assert outcome.ok
    assert len(provider.requests) == 1
    assert provider.nested_outcome is not None
    assert provider.nested_outcome.failure is AnalysisFailure.IN_FLIGHT
    assert session.analysis == SAMPLE_RESULT


@pytest.mark.anyio
async def test_deterministic_provider_through_session(sample_form):
    session = DashboardSession(InMemorySnapshotStore())
    session.restore()
    session.form = sample_form

    outcome = await session.request_analysis(DeterministicAnalysisProvider())

    assert outcome.ok
    assert session.analysis is not None
    assert 1 <= len(session.analysis.insights) <= 3


class CrashingProvider:
    name = "crashing"

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        raise RuntimeError("unexpected SDK failure")


@pytest.mark.anyio
async def test_provider_exception_applies_fallback(sample_form):
    store = InMemorySnapshotStore(encode_snapshot(Snapshot(form=sample_form, analysis=SAMPLE_RESULT)))
    session = DashboardSession(store)
    session.restore()

    outcome = await session.request_analysis(CrashingProvider())

    assert outcome.provider == "crashing"
    assert outcome.failure is AnalysisFailure.TRANSPORT
    assert "unexpected SDK failure" in outcome.detail
    assert session.analysis_in_flight is False
    assert session.analysis == FALLBACK_ANALYSIS
    assert store.load().analysis == FALLBACK_ANALYSIS
