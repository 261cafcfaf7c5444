import asyncio
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence, Tuple

import streamlit as st

SERVICES_ROOT = Path(__file__).resolve().parents[1]
for _path in (SERVICES_ROOT / "wealth-service" / "src", SERVICES_ROOT):
    if str(_path) not in sys.path:
        sys.path.append(str(_path))

from analysis_provider import AnalysisProvider, build_analysis_provider  # noqa: E402
from compute_metrics import coerce_amount, format_currency, format_percent  # noqa: E402
from model_settings import ProjectionSettings, load_projection_settings  # noqa: E402
from persistence import SqlSnapshotStore, get_engine, init_db, make_session_factory  # noqa: E402
from shared.observability.telemetry import setup_telemetry  # noqa: E402
from shared.provider_settings import load_provider_settings  # noqa: E402
from view_flow import DashboardSession, ViewEvent, ViewState  # noqa: E402

logger = logging.getLogger(__name__)

SESSION_KEY = "dashboard_session"
FIELD_KEY_PREFIX = "field_"

CURRENCIES: Tuple[str, ...] = ("AUD", "USD", "GBP", "EUR")
INCOME_FREQUENCIES: Tuple[Tuple[str, str], ...] = (
    ("annual", "Annual"),
    ("monthly", "Monthly"),
    ("fortnightly", "Fortnightly"),
)
PERIOD_FREQUENCIES: Tuple[Tuple[str, str], ...] = (
    ("weekly", "Weekly"),
    ("fortnightly", "Fortnightly"),
    ("monthly", "Monthly"),
)
EXPENSE_LABELS: Tuple[Tuple[str, str], ...] = (
    ("rent", "Rent/mortgage"),
    ("utilities", "Utilities"),
    ("groceries", "Groceries"),
    ("dining", "Dining/social"),
    ("transport", "Transport"),
    ("health", "Health/fitness"),
    ("subscriptions", "Subscriptions"),
    ("personal", "Personal"),
    ("savings_invest", "Savings/invest"),
)
ASSET_LABELS: Tuple[Tuple[str, str], ...] = (
    ("etfs", "ETFs/stocks"),
    ("crypto", "Crypto"),
    ("super", "Super/401k"),
    ("property", "Property equity"),
    ("other_assets", "Other"),
)
TOOLTIPS = {
    "cash_floor": (
        "The minimum cash you keep as a buffer. Usually 2-3 months of expenses. "
        "Money only moves to investments when you're above this."
    ),
    "credit_target": "Your target credit card balance by end of pay cycle. Usually ≤1 cycle of spending.",
    "credit_balance": "What you currently owe on your credit card.",
}
INSIGHT_MARKERS = {"celebrate": "🟢", "warning": "🔴", "opportunity": "🔵"}


@st.cache_resource
def get_snapshot_store() -> SqlSnapshotStore:
    engine = get_engine()
    init_db(engine)
    return SqlSnapshotStore(make_session_factory(engine))


@st.cache_resource
def get_analysis_provider() -> AnalysisProvider:
    settings = load_provider_settings()
    return build_analysis_provider(settings.provider_name, settings=settings)


@st.cache_resource
def get_projection_settings() -> ProjectionSettings:
    return load_projection_settings()


def get_session() -> DashboardSession:
    session = st.session_state.get(SESSION_KEY)
    if session is None:
        session = DashboardSession(get_snapshot_store(), settings=get_projection_settings())
        session.restore()
        st.session_state[SESSION_KEY] = session
    return session


def _go(event: ViewEvent) -> None:
    get_session().dispatch(event)


def _reset() -> None:
    get_session().reset()
    for key in [key for key in st.session_state.keys() if str(key).startswith(FIELD_KEY_PREFIX)]:
        del st.session_state[key]


def _sync_field(field: str) -> None:
    value = st.session_state[f"{FIELD_KEY_PREFIX}{field}"]
    if isinstance(value, date):
        value = value.isoformat()
    get_session().update_field(field, value)


def _text_field(field: str, label: str, placeholder: str = "", container=st) -> None:
    session = get_session()
    container.text_input(
        label,
        value=getattr(session.form, field),
        key=f"{FIELD_KEY_PREFIX}{field}",
        placeholder=placeholder,
        help=TOOLTIPS.get(field),
        on_change=_sync_field,
        args=(field,),
    )


def _choice_field(field: str, label: str, options: Sequence[Tuple[str, str]], container=st) -> None:
    session = get_session()
    values = [value for value, _ in options]
    labels = dict(options)
    current = getattr(session.form, field)
    container.selectbox(
        label,
        values,
        index=values.index(current) if current in values else len(values) - 1,
        format_func=lambda value: labels.get(value, value),
        key=f"{FIELD_KEY_PREFIX}{field}",
        on_change=_sync_field,
        args=(field,),
    )


def _parse_date(raw: str) -> Optional[date]:
    try:
        return date.fromisoformat(raw) if raw else None
    except ValueError:
        return None


def render_landing() -> None:
    st.caption("A CRITICAL ANALYSIS OF PERSONAL WEALTH")
    st.title("It can calculate like a spreadsheet, think like an advisor, and teach you what both can't.")
    st.write("Most tools show where your money went. This one shows where it's going.")
    st.button("Begin", on_click=_go, args=(ViewEvent.BEGIN,))


def render_philosophy() -> None:
    st.button("← back", on_click=_go, args=(ViewEvent.BACK,))
    st.header("The system")
    st.write(
        "Every pay cycle, money moves. Cash stays above your floor. "
        "Credit stays below your ceiling. The rest goes to work."
    )
    st.write("That's it. No timing the market. No complexity theater.")
    st.write(
        "The people who build wealth aren't smarter. They just show up. "
        "Again and again. The system makes showing up automatic."
    )
    st.write("An advisor model reads your numbers and tells you what to do next.")
    st.button("Build my system", on_click=_go, args=(ViewEvent.BUILD_SYSTEM,))
    st.caption("Your data stays on your device.")


def render_setup() -> None:
    session = get_session()
    st.button("← back", on_click=_go, args=(ViewEvent.BACK,))
    st.header("Your numbers")

    _text_field("name", "Name", placeholder="First name")
    age_col, income_col, frequency_col = st.columns(3)
    _text_field("age", "Age", placeholder="28", container=age_col)
    _text_field("income", "Income", placeholder="140000", container=income_col)
    _choice_field("frequency", "Frequency", INCOME_FREQUENCIES, container=frequency_col)
    _choice_field("currency", "Currency", tuple((code, code) for code in CURRENCIES))

    payday_col, pay_frequency_col = st.columns(2)
    payday_col.date_input(
        "Next payday",
        value=_parse_date(session.form.next_payday),
        key=f"{FIELD_KEY_PREFIX}next_payday",
        on_change=_sync_field,
        args=("next_payday",),
    )
    _choice_field("pay_frequency", "Pay frequency", PERIOD_FREQUENCIES, container=pay_frequency_col)

    st.subheader("Cash & credit")
    cash_cols = st.columns(4)
    _text_field("cash", "Cash balance", container=cash_cols[0])
    _text_field("cash_floor", "Cash floor", container=cash_cols[1])
    _text_field("credit_balance", "Credit balance", container=cash_cols[2])
    _text_field("credit_target", "Credit target", container=cash_cols[3])

    st.subheader("Expenses")
    _choice_field("expense_frequency", "Entered as", PERIOD_FREQUENCIES)
    expense_cols = st.columns(3)
    for index, (field, label) in enumerate(EXPENSE_LABELS):
        _text_field(field, label, container=expense_cols[index % 3])

    st.subheader("Assets")
    asset_cols = st.columns(3)
    for index, (field, label) in enumerate(ASSET_LABELS):
        _text_field(field, label, container=asset_cols[index % 3])

    st.subheader("Equity")
    st.checkbox(
        "I have startup equity",
        value=session.form.has_equity,
        key=f"{FIELD_KEY_PREFIX}has_equity",
        on_change=_sync_field,
        args=("has_equity",),
    )
    if session.form.has_equity:
        equity_cols = st.columns(4)
        _text_field("equity_value", "Total equity value", container=equity_cols[0])
        _text_field("company_valuation", "Company valuation", container=equity_cols[1])
        _text_field("vesting_months", "Vesting period (months)", placeholder="48", container=equity_cols[2])
        _text_field("vested_months", "Months vested", placeholder="12", container=equity_cols[3])

    st.button("See my system", type="primary", on_click=_go, args=(ViewEvent.SHOW_DASHBOARD,))


def _status_label(ok: bool, label: str) -> str:
    return f"{'🟢' if ok else '🔴'} {label}"


def render_dashboard() -> None:
    session = get_session()
    form = session.form
    metrics = session.metrics

    edit_col, reset_col, _ = st.columns([1, 1, 6])
    edit_col.button("edit", on_click=_go, args=(ViewEvent.EDIT,))
    reset_col.button("reset", on_click=_reset)

    owner = f"{form.name}'s" if form.name else "Your"
    st.title(f"{owner} system.")
    st.caption(f"Net worth {format_currency(metrics.net_worth)} · Savings rate {format_percent(metrics.savings_rate)}")

    cash_col, credit_col, rate_col = st.columns(3)
    cash_col.metric(_status_label(metrics.cash_ok, "Cash"), format_currency(coerce_amount(form.cash)))
    cash_col.caption(f"floor {format_currency(coerce_amount(form.cash_floor))}")
    credit_col.metric(_status_label(metrics.credit_ok, "Credit"), format_currency(coerce_amount(form.credit_balance)))
    credit_col.caption(f"target ≤{format_currency(coerce_amount(form.credit_target))}")
    rate_col.metric(_status_label(metrics.rate_ok, "Rate"), format_percent(metrics.savings_rate))
    rate_col.caption(f"{format_currency(metrics.surplus)}/mo")

    st.subheader("Projection")
    st.line_chart(
        [{"year": point.year, "value": point.value} for point in metrics.projection],
        x="year",
        y="value",
    )
    milestone_cols = st.columns(4)
    for col, year in zip(milestone_cols, (1, 2, 3, 5)):
        col.metric(f"{year}yr", format_currency(metrics.projected_value(year)))

    st.subheader("Holdings")
    for label, amount in metrics.holdings:
        st.write(f"{label}: {format_currency(amount)}")
    st.write(f"**Total: {format_currency(metrics.liquid_total + metrics.illiquid_total)}**")

    if form.has_equity:
        st.subheader("Equity")
        st.write(f"Total value: {format_currency(metrics.equity_value)}")
        st.write(
            f"Vested ({form.vested_months or 0}/{form.vesting_months}): "
            f"{format_currency(metrics.vested_equity_value)}"
        )
        st.progress(min(max(metrics.vesting_progress, 0.0), 1.0))
        if coerce_amount(form.company_valuation) > 0:
            st.caption(f"Valuation: {format_currency(coerce_amount(form.company_valuation))}")

    render_analysis(session)
    st.caption("Your data stays on your device.")


def render_analysis(session: DashboardSession) -> None:
    st.subheader("The advisor's take")
    if st.button("Analyze", disabled=session.analysis_in_flight):
        with st.spinner("Thinking..."):
            asyncio.run(session.request_analysis(get_analysis_provider()))

    analysis = session.analysis
    if analysis is None:
        st.write("_Hit analyze for an interpretation of your numbers._")
        return

    if analysis.headline:
        st.markdown(f"*{analysis.headline}*")
    for insight in analysis.insights:
        st.markdown(f"{INSIGHT_MARKERS.get(insight.type, '⚪')} **{insight.title}**")
        st.write(insight.body)
    st.info(f"Your one move: {analysis.one_move}")


RENDERERS = {
    ViewState.LANDING: render_landing,
    ViewState.PHILOSOPHY: render_philosophy,
    ViewState.SETUP: render_setup,
    ViewState.DASHBOARD: render_dashboard,
}


def main() -> None:
    setup_telemetry("wealth-dashboard")
    st.set_page_config(page_title="Wealth System", layout="centered")
    session = get_session()
    RENDERERS[session.state]()


if __name__ == "__main__":
    main()
