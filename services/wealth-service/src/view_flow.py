"""
View state machine and the dashboard session that owns the user's data.

The flow is landing -> philosophy -> setup -> dashboard, with edit/back links
and a reset that returns to landing from anywhere. Rendering is left to the UI;
this module only decides which screen is active and when the snapshot is
written.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from shared.observability.privacy import hash_payload
from shared.observability.telemetry import bind_request_context, new_request_id, reset_request_context

from analysis_provider import AnalysisFailure, AnalysisOutcome, AnalysisProvider, AnalysisProviderRequest
from compute_metrics import compute_metrics
from model_settings import ProjectionSettings
from persistence.snapshot import Snapshot
from persistence.store import SnapshotStore
from wealth_model import AnalysisResult, DerivedMetrics, InputRecord

logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    """Screens of the dashboard flow."""

    LANDING = "landing"
    PHILOSOPHY = "philosophy"
    SETUP = "setup"
    DASHBOARD = "dashboard"


class ViewEvent(str, Enum):
    """User actions that move between screens."""

    BEGIN = "begin"
    BUILD_SYSTEM = "build_system"
    SHOW_DASHBOARD = "show_dashboard"
    EDIT = "edit"
    BACK = "back"
    RESET = "reset"


_TRANSITIONS: dict[tuple[ViewState, ViewEvent], ViewState] = {
    (ViewState.LANDING, ViewEvent.BEGIN): ViewState.PHILOSOPHY,
    (ViewState.PHILOSOPHY, ViewEvent.BUILD_SYSTEM): ViewState.SETUP,
    (ViewState.PHILOSOPHY, ViewEvent.BACK): ViewState.LANDING,
    (ViewState.SETUP, ViewEvent.SHOW_DASHBOARD): ViewState.DASHBOARD,
    (ViewState.SETUP, ViewEvent.BACK): ViewState.PHILOSOPHY,
    (ViewState.DASHBOARD, ViewEvent.EDIT): ViewState.SETUP,
}


def transition(state: ViewState, event: ViewEvent) -> ViewState:
    """
    Return the screen that follows `state` when `event` happens.

    Reset always lands on the landing screen. Events with no control on the
    current screen leave the state unchanged.
    """
    if event is ViewEvent.RESET:
        return ViewState.LANDING
    return _TRANSITIONS.get((state, event), state)


def available_events(state: ViewState) -> list[ViewEvent]:
    events = [event for (source, event) in _TRANSITIONS if source is state]
    events.append(ViewEvent.RESET)
    return events


def initial_view_state(snapshot: Optional[Snapshot]) -> ViewState:
    """Restored sessions with a name skip straight to the dashboard."""
    if snapshot is not None and snapshot.form.name.strip():
        return ViewState.DASHBOARD
    return ViewState.LANDING


class DashboardSession:
    """
    Owns the input record, the latest analysis and the active screen.

    The snapshot is written after every change, but only once `restore` has
    finished and only while the dashboard is showing, so default values never
    overwrite a stored session.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        settings: ProjectionSettings | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self.form = InputRecord()
        self.analysis: Optional[AnalysisResult] = None
        self.state = ViewState.LANDING
        self.initialized = False
        self.analysis_in_flight = False

    @property
    def metrics(self) -> DerivedMetrics:
        return compute_metrics(self.form, self._settings)

    @property
    def persistence_enabled(self) -> bool:
        return self.initialized and self.state is ViewState.DASHBOARD

    def restore(self) -> ViewState:
        snapshot = self._store.load()
        if snapshot is not None:
            self.form = snapshot.form
            self.analysis = snapshot.analysis
        self.state = initial_view_state(snapshot)
        self.initialized = True
        logger.info(
            {
                "event": "session_restored",
                "found_snapshot": snapshot is not None,
                "view_state": self.state.value,
            }
        )
        self._persist()
        return self.state

    def dispatch(self, event: ViewEvent | str) -> ViewState:
        event = ViewEvent(event)
        previous = self.state
        self.state = transition(previous, event)

        if event is ViewEvent.RESET:
            self._reset_data()
        elif self.state is not previous:
            logger.info(
                {
                    "event": "view_transition",
                    "from_state": previous.value,
                    "to_state": self.state.value,
                    "trigger": event.value,
                }
            )
            self._persist()
        return self.state

    def update_field(self, name: str, value: Any) -> None:
        updated = self.form.with_field(name, value)
        if updated == self.form:
            return
        self.form = updated
        self._persist()

    def reset(self) -> ViewState:
        return self.dispatch(ViewEvent.RESET)

    async def request_analysis(self, provider: AnalysisProvider) -> AnalysisOutcome:
        """
        Ask `provider` for commentary on the current numbers.

        Only one request may be outstanding; overlapping calls get an
        IN_FLIGHT outcome and leave the current analysis untouched. Any other
        failure, including an exception escaping the provider, stores the
        fallback commentary.
        """
        if self.analysis_in_flight:
            return AnalysisOutcome.failed(
                getattr(provider, "name", "unknown"),
                AnalysisFailure.IN_FLIGHT,
                "An analysis request is already running.",
            )

        request_id = new_request_id()
        token = bind_request_context(request_id)
        self.analysis_in_flight = True
        try:
            request = AnalysisProviderRequest(
                form=self.form,
                metrics=self.metrics,
                request_id=request_id,
                context={"surface": "dashboard"},
            )
            outcome = await provider.analyze(request)
        except Exception as exc:
            provider_name = getattr(provider, "name", "unknown")
            logger.error(
                {
                    "event": "analysis_provider_crashed",
                    "provider": provider_name,
                    "request_id": request_id,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )
            outcome = AnalysisOutcome.failed(provider_name, AnalysisFailure.TRANSPORT, str(exc))
        finally:
            self.analysis_in_flight = False
            reset_request_context(token)

        self.analysis = outcome.result_or_fallback()
        logger.info(
            {
                "event": "analysis_applied",
                "provider": outcome.provider,
                "ok": outcome.ok,
                "failure": outcome.failure.value if outcome.failure else None,
                "analysis_hash": hash_payload(self.analysis),
            }
        )
        self._persist()
        return outcome

    def snapshot(self) -> Snapshot:
        return Snapshot(form=self.form, analysis=self.analysis)

    def _reset_data(self) -> None:
        self._store.clear()
        self.form = InputRecord()
        self.analysis = None
        logger.info({"event": "session_reset"})

    def _persist(self) -> None:
        if not self.persistence_enabled:
            return
        self._store.store(self.snapshot())
