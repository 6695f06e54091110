"""Runs tab: facet filters, run list, queue creation and CSV upload."""

import os
from datetime import date
from typing import Any

import pandas as pd
import streamlit as st

from utils import app_state as S
from utils.chunked_upload import EmptyCsvError, summarize_upload, upload_csv_in_chunks
from utils.config_utils import resolve_chunk_size
from utils.shared_ui import dispatch, get_backend, get_state, toast

FACET_LABELS = {
    "org": "Organization",
    "course": "Course",
    "milestone": "Milestone",
    "question_input_type": "Question input type",
    "question_purpose": "Question purpose",
    "question_type": "Question type",
    "type": "Type",
    "stage": "Stage",
}

TIME_FILTER_LABELS = {
    "all": "All time",
    "today": "Today",
    "yesterday": "Yesterday",
    "last7days": "Last 7 days",
    "last30days": "Last 30 days",
    "custom": "Custom range",
}


def _run_row(run: dict[str, Any], reviewer: str) -> dict[str, Any]:
    meta = run.get("metadata") or {}
    ann = (run.get("annotations") or {}).get(reviewer) or {}
    first_user = next((m.get("content") for m in run.get("messages") or [] if m.get("role") == "user"), "")
    return {
        "time": run.get("start_time") or run.get("createdAt") or "",
        "org": (meta.get("org") or {}).get("name") or "",
        "course": (meta.get("course") or {}).get("name") or "",
        "milestone": (meta.get("milestone") or {}).get("name") or "",
        "task_id": meta.get("task_id"),
        "stage": meta.get("stage") or "",
        "my judgement": ann.get("judgement") or "",
        "annotators": len(run.get("annotations") or {}),
        "prompt": (first_user or "")[:160],
    }


def _render_facet(facet: str, options: list[str], conversations: list[dict[str, Any]], state: S.ReviewState) -> None:
    selected = list(getattr(state.filters, facet))
    # keep selected values visible even when the current search hides them
    merged = options + [v for v in selected if v not in options]
    picked = st.multiselect(
        FACET_LABELS[facet],
        options=merged,
        default=selected,
        key=f"facet_{facet}_{'|'.join(selected)}",
    )
    for value in set(picked) ^ set(selected):
        dispatch(S.toggle_filter_value, conversations, facet, value)
    if set(picked) != set(selected):
        st.rerun()


def _render_filters(conversations: list[dict[str, Any]]) -> None:
    state = get_state()
    head_l, head_r = st.columns([3, 1])
    with head_l:
        st.markdown("#### Filters")
    with head_r:
        if st.button("Clear all", use_container_width=True):
            dispatch(S.clear_filters)
            st.rerun()

    annotation = st.radio(
        "Annotation",
        options=list(S.ANNOTATION_FILTERS),
        index=S.ANNOTATION_FILTERS.index(state.filters.annotation),
        horizontal=True,
    )
    if annotation != state.filters.annotation:
        dispatch(S.set_annotation_filter, annotation)
        st.rerun()

    time_filter = st.selectbox(
        "Time",
        options=list(S.TIME_FILTERS),
        index=S.TIME_FILTERS.index(state.filters.time_filter),
        format_func=lambda k: TIME_FILTER_LABELS[k],
    )
    if time_filter != state.filters.time_filter:
        dispatch(S.set_time_filter, time_filter)
        st.rerun()

    if state.filters.time_filter == "custom":
        c1, c2 = st.columns(2)
        with c1:
            start = st.date_input("Start date", value=date.fromisoformat(state.filters.start_date) if state.filters.start_date else None)
        with c2:
            end = st.date_input("End date", value=date.fromisoformat(state.filters.end_date) if state.filters.end_date else None)
        start_s = start.isoformat() if isinstance(start, date) else ""
        end_s = end.isoformat() if isinstance(end, date) else ""
        if (start_s, end_s) != (state.filters.start_date, state.filters.end_date):
            dispatch(S.set_custom_dates, start_s, end_s)
            st.rerun()

    for facet in ("org", "course", "milestone"):
        search = st.text_input(
            f"Search {FACET_LABELS[facet].lower()}",
            value=getattr(state, f"{facet}_search"),
            key=f"search_{facet}",
        )
        if search != getattr(state, f"{facet}_search"):
            state = dispatch(S.set_search, facet, search)

    options = S.filter_options(
        conversations,
        state.filters,
        state.org_search,
        state.course_search,
        state.milestone_search,
    )
    for facet in S.FACETS:
        _render_facet(facet, options[facet], conversations, get_state())


def _render_upload() -> None:
    state = get_state()
    with st.expander("📤 Upload runs CSV", expanded=False):
        st.caption("Upload a span export (CSV). Runs already present (same span id) are skipped.")
        uploaded = st.file_uploader("Runs CSV", type=["csv"], key="runs_csv_uploader")
        if not st.button("Upload", type="primary", disabled=uploaded is None):
            return

        try:
            text = uploaded.getvalue().decode("utf-8-sig")
        except UnicodeDecodeError:
            toast("error", "Error processing CSV file. Please try again.")
            return

        progress = st.progress(0.0, text="Preparing data for upload...")

        def _on_progress(done: int, total: int) -> None:
            if done >= total:
                progress.progress(0.9, text="Refreshing data...")
            else:
                progress.progress(0.15 + 0.7 * done / total, text=f"Processing chunk {done + 1} of {total}...")

        try:
            summary = upload_csv_in_chunks(
                text,
                state.current_user,
                get_backend(),
                chunk_size=resolve_chunk_size(os.environ),
                on_progress=_on_progress,
            )
        except EmptyCsvError as e:
            progress.empty()
            toast("error", str(e))
            return

        level, message = summarize_upload(summary)
        toast(level, message)
        if summary.conversations is not None:
            st.session_state.conversations = summary.conversations
        else:
            toast("warning", "Upload completed but failed to refresh data. Please refresh the page.")
        progress.progress(1.0, text="Complete!")
        if summary.chunk_errors:
            st.json({"chunk_errors": summary.chunk_errors})


def _render_create_queue(filtered: list[dict[str, Any]]) -> None:
    state = get_state()
    with st.popover("➕ Create annotation queue", disabled=not filtered, use_container_width=True):
        st.caption(f"The queue will contain a snapshot of the {len(filtered):,} runs currently listed.")
        name = st.text_input("Queue name", key="new_queue_name")
        if st.button("Create queue", type="primary", disabled=not name.strip()):
            try:
                queue, queues = get_backend().create_queue(name, filtered, state.current_user)
            except Exception as e:
                toast("error", f"Error creating annotation queue. Please try again. ({e})")
                return
            st.session_state.queues = queues
            dispatch(S.queue_created, queue)
            toast("success", "Annotation queue created successfully!")
            st.rerun()


def render(conversations: list[dict[str, Any]]) -> None:
    """Render the Runs tab."""
    col_filters, col_runs = st.columns([1, 1], gap="large")

    with col_filters:
        _render_filters(conversations)

    state = get_state()
    filtered = S.filter_conversations(
        conversations,
        state.filters,
        state.current_user,
        sort_by=state.sort_by,
        sort_order=state.sort_order,
    )
    annotated, total = S.annotation_progress(filtered, state.current_user)

    with col_runs:
        st.markdown(f"#### Runs ({len(filtered):,} of {len(conversations):,})")
        st.caption(f"You have annotated {annotated:,} of {total:,} listed runs.")

        c_order, c_queue = st.columns([1, 2])
        with c_order:
            order = st.selectbox(
                "Order",
                options=["desc", "asc"],
                index=0 if state.sort_order == "desc" else 1,
                format_func=lambda o: "Newest first" if o == "desc" else "Oldest first",
            )
            if order != state.sort_order:
                dispatch(S.set_sort, state.sort_by, order)
                st.rerun()
        with c_queue:
            _render_create_queue(filtered)

        if filtered:
            st.dataframe(
                pd.DataFrame([_run_row(r, state.current_user) for r in filtered]),
                hide_index=True,
                use_container_width=True,
            )
        else:
            st.info("No runs match the current filters.")

        _render_upload()
