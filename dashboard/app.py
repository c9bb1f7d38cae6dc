"""Streamlit operator dashboard for the FabLab scheduling service."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("FABLAB_API_URL", "http://127.0.0.1:8000")
PLACEHOLDER = "--:-- --"

st.set_page_config(
    page_title="FabLab Scheduling",
    page_icon="🛠️",
    layout="wide",
)


# ==========================================
# API Helper Functions
# ==========================================
def _request(method: str, path: str, **kwargs: Any) -> Optional[Any]:
    try:
        response = requests.request(method, f"{API_BASE_URL}{path}", timeout=10, **kwargs)
        if response.status_code == 400:
            detail = response.json().get("detail")
            messages = detail if isinstance(detail, list) else [detail]
            for message in messages:
                st.error(str(message))
            return None
        response.raise_for_status()
        if response.status_code == 204:
            return {}
        if response.headers.get("content-type", "").startswith("application/pdf"):
            return response.content
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None


def fetch_services() -> List[Dict[str, Any]]:
    return _request("GET", "/services") or []


def fetch_business_hours() -> Dict[str, Any]:
    return _request("GET", "/business_hours") or {}


def fetch_availability_range(service: str, dates: List[datetime.date], quantity: int) -> List[Dict[str, Any]]:
    payload = {"service": service, "quantity": quantity, "dates": [str(item) for item in dates]}
    return _request("POST", "/availability/range", json=payload) or []


def fetch_time_options(
    service: str,
    dates: List[datetime.date],
    quantity: int,
    selections: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    payload = {
        "service": service,
        "quantity": quantity,
        "dates": [str(item) for item in dates],
        "selections": selections,
    }
    return _request("POST", "/time_slots/options", json=payload)


# ==========================================
# UI Page Functions
# ==========================================
def render_availability_page() -> None:
    st.header("📅 Machine Availability")
    hours = fetch_business_hours()
    if hours:
        st.markdown(
            f"Morning ({hours['morning_start']:02d}:00-{hours['morning_end']:02d}:00) and afternoon "
            f"({hours['afternoon_start']:02d}:00-{hours['afternoon_end']:02d}:00) blocks for the next weeks."
        )

    services = fetch_services()
    if not services:
        st.info("No services available.")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        service = st.selectbox("Service", [item["name"] for item in services])
    with col2:
        start = st.date_input("From", datetime.date.today())
    with col3:
        quantity = st.number_input("Machines needed", min_value=1, max_value=10, value=1)

    dates = [start + datetime.timedelta(days=offset) for offset in range(14)]
    days = fetch_availability_range(service, dates, int(quantity))
    if days:
        df = pd.DataFrame(days)
        df["weekday"] = pd.to_datetime(df["date"]).dt.day_name()
        st.dataframe(df[["date", "weekday", "morning", "afternoon"]], use_container_width=True)


def render_booking_page() -> None:
    st.header("🕘 Book Machine Time")

    services = fetch_services()
    if not services:
        st.info("No services available.")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        service = st.selectbox("Service", [item["name"] for item in services], key="booking_service")
    with col2:
        requester = st.text_input("Requester", value="")
    with col3:
        quantity = st.number_input("Machines needed", min_value=1, max_value=10, value=1, key="booking_qty")

    hours = fetch_business_hours()
    if not hours:
        return
    max_dates = hours["max_candidate_dates"]
    today = datetime.date.today()
    candidates = [
        today + datetime.timedelta(days=offset) for offset in range(1, hours["booking_horizon_days"] + 1)
    ]
    dates = st.multiselect(f"Dates (up to {max_dates})", candidates, max_selections=max_dates)
    if not dates:
        st.info("Pick at least one date.")
        return

    picks: List[Dict[str, Any]] = st.session_state.get("picks", [])
    options = fetch_time_options(service, dates, int(quantity), picks)
    if options is None:
        return

    new_picks: List[Dict[str, Any]] = []
    for day in options["days"]:
        st.subheader(day["date"])
        blocks = [name for name, free in (("morning", day["morning"]), ("afternoon", day["afternoon"])) if free]
        st.caption("Free blocks: " + (", ".join(blocks) if blocks else "none"))
        for message in day["messages"]:
            st.warning(message)
        start_col, end_col = st.columns(2)
        start_choices = [PLACEHOLDER] + day["start_options"]
        end_choices = [PLACEHOLDER] + day["end_options"]
        with start_col:
            start = st.selectbox(
                "Start",
                start_choices,
                index=start_choices.index(day["start_time"]) if day["start_time"] in start_choices else 0,
                key=f"start_{day['date']}",
            )
        with end_col:
            end = st.selectbox(
                "End",
                end_choices,
                index=end_choices.index(day["end_time"]) if day["end_time"] in end_choices else 0,
                key=f"end_{day['date']}",
            )
        new_picks.append({"date": day["date"], "start_time": start, "end_time": end})

    if new_picks != picks:
        st.session_state["picks"] = new_picks
        st.rerun()

    for error in options["validation_errors"]:
        st.caption(error)

    if st.button("Submit Reservation", type="primary", disabled=bool(options["validation_errors"])):
        result = _request(
            "POST",
            "/reservations",
            json={"requester": requester, "service": service, "quantity": int(quantity), "days": new_picks},
        )
        if result:
            st.success(f"Reservation #{result['reservation_id']} submitted ({result['status']}).")
            st.session_state["picks"] = []


def render_reports_page() -> None:
    st.header("📊 Utilization Reports")

    col1, col2, col3 = st.columns(3)
    with col1:
        date_from = st.date_input("From", datetime.date.today() - datetime.timedelta(days=30), key="rep_from")
    with col2:
        date_to = st.date_input("To", datetime.date.today(), key="rep_to")
    with col3:
        granularity = st.selectbox("Granularity", ["day", "week", "month", "year"])

    params = {"date_from": str(date_from), "date_to": str(date_to), "granularity": granularity}
    summary = _request("GET", "/reports/summary", params=params)
    if not summary:
        return

    metric_col1, metric_col2, metric_col3 = st.columns(3)
    metric_col1.metric("Requests", summary["total_requests"])
    metric_col2.metric("Pending", summary["pending_count"])
    metric_col3.metric("Completed", summary["completed_count"])

    if summary["trend"]:
        trend = pd.DataFrame(summary["trend"]).set_index("period")
        st.bar_chart(trend[["requests", "hours"]])
    if summary["machine_usage"]:
        st.write("### Machine usage")
        st.dataframe(pd.DataFrame(summary["machine_usage"]), use_container_width=True)

    pdf = _request("GET", "/reports/pdf", params=params)
    if pdf:
        st.download_button("Download PDF", data=pdf, file_name="utilization_report.pdf", mime="application/pdf")


def render_blocked_dates_page() -> None:
    st.header("🚫 Blocked Dates")

    col1, col2 = st.columns(2)
    with col1:
        blocked_day = st.date_input("Date to block", datetime.date.today())
    with col2:
        reason = st.text_input("Reason", value="")
    if st.button("Block Date", type="primary"):
        if _request("POST", "/blocked_dates", json={"date": str(blocked_day), "reason": reason or None}) is not None:
            st.success(f"{blocked_day} blocked.")

    blocked = _request("GET", "/blocked_dates") or []
    for item in blocked:
        row_col, action_col = st.columns([4, 1])
        row_col.write(f"{item['date']}: {item.get('reason') or 'No reason given'}")
        if action_col.button("Remove", key=f"unblock_{item['blocked_id']}"):
            _request("DELETE", f"/blocked_dates/{item['blocked_id']}")
            st.rerun()


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("FabLab Scheduling")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation",
        ["Availability", "Book Time", "Reports", "Blocked Dates"],
    )

    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")

    if page == "Availability":
        render_availability_page()
    elif page == "Book Time":
        render_booking_page()
    elif page == "Reports":
        render_reports_page()
    elif page == "Blocked Dates":
        render_blocked_dates_page()


if __name__ == "__main__":
    main()
