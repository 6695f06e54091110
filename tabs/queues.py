"""Queues tab: queue list, per-run annotation and annotator overview."""

from typing import Any

import streamlit as st

from utils import app_state as S
from utils.charts import annotation_status_chart, judgement_counts
from utils.conversation_store import find_by_id, queue_annotation_rows
from utils.data_helpers import csv_bytes_any
from utils.shared_ui import dispatch, get_backend, get_state, toast

ROLE_LABELS = {"user": "(つ ⊙_⊙)つ User", "assistant": "|> °-°|> Assistant"}


def _queue_label(queue: dict[str, Any], reviewer: str) -> str:
    done, total = S.annotation_progress(queue.get("runs") or [], reviewer)
    return f"{queue.get('name') or queue.get('id')}  ·  {done}/{total}"


def _render_queue_list(queues: list[dict[str, Any]]) -> None:
    state = get_state()
    st.markdown(f"#### Annotation queues ({len(queues)})")
    if not queues:
        st.info("No queues yet. Filter runs on the Runs tab and create one.")
        return

    ids = [q.get("id") for q in queues]
    index = ids.index(state.selected_queue_id) if state.selected_queue_id in ids else None
    picked = st.radio(
        "Queue",
        options=ids,
        index=index,
        format_func=lambda qid: _queue_label(find_by_id(queues, qid) or {}, state.current_user),
        label_visibility="collapsed",
    )
    if picked != state.selected_queue_id:
        dispatch(S.select_queue, picked)
        st.rerun()


def _render_messages(run: dict[str, Any]) -> None:
    messages = run.get("messages") or []
    if not messages:
        st.caption("This run has no chat turns.")
        return
    for msg in messages:
        role = msg.get("role") or "assistant"
        st.markdown(f"**`{ROLE_LABELS.get(role, role)}`**")
        st.code(str(msg.get("content") or ""), language=None, wrap_lines=True)


def _render_context(run: dict[str, Any]) -> None:
    meta = run.get("metadata") or {}
    with st.expander("📋 Run context", expanded=False):
        cols = st.columns(4)
        with cols[0]:
            st.caption("**Organization**")
            st.write((meta.get("org") or {}).get("name") or "—")
        with cols[1]:
            st.caption("**Course**")
            st.write((meta.get("course") or {}).get("name") or "—")
        with cols[2]:
            st.caption("**Milestone**")
            st.write((meta.get("milestone") or {}).get("name") or "—")
        with cols[3]:
            st.caption("**Stage**")
            st.write(meta.get("stage") or "—")
        st.caption(
            f"span `{run.get('span_id')}` · trace `{run.get('trace_id') or '—'}` · "
            f"model `{run.get('model_name') or '—'}` · {S.display_timestamp(run)}"
        )
        st.json(meta, expanded=False)


def _save_annotation(run: dict[str, Any]) -> None:
    state = get_state()
    if state.current_judgement is None:
        toast("warning", "Pick Correct or Wrong before saving.")
        return
    try:
        conversations, queues = get_backend().record_annotation(
            run["id"],
            state.current_user,
            state.current_judgement,
            state.annotation_notes,
        )
    except Exception as e:
        toast("error", f"Error saving annotation. Please try again. ({e})")
        return
    st.session_state.conversations = conversations
    st.session_state.queues = queues
    dispatch(S.mark_annotation_saved)
    toast("success", "Annotation saved")


def _render_annotator(run: dict[str, Any], runs: list[dict[str, Any]]) -> None:
    state = get_state()
    idx = S.current_run_index(state, runs)
    done, total = S.annotation_progress(runs, state.current_user)

    st.progress(done / total if total else 0.0)
    c1, c2 = st.columns(2)
    with c1:
        st.metric("Done", f"{done}/{total}")
    with c2:
        st.metric("Run", f"{idx + 1}/{len(runs)}")

    st.markdown("**Judge this response**")
    j1, j2 = st.columns(2)
    with j1:
        style = "primary" if state.current_judgement == "correct" else "secondary"
        if st.button("✅ Correct", key="btn_correct", type=style, use_container_width=True):
            dispatch(S.set_judgement, "correct")
            st.rerun()
    with j2:
        style = "primary" if state.current_judgement == "wrong" else "secondary"
        if st.button("❌ Wrong", key="btn_wrong", type=style, use_container_width=True):
            dispatch(S.set_judgement, "wrong")
            st.rerun()

    notes = st.text_area(
        "📝 Notes (optional)",
        value=state.annotation_notes,
        height=120,
        key=f"_notes_{run.get('id')}",
        placeholder="Why is this response correct or wrong?",
    )
    if notes != state.annotation_notes:
        state = dispatch(S.set_notes, notes)

    if S.has_annotation_changes(state):
        st.caption("Unsaved changes")

    if st.button(
        "💾 Save annotation",
        type="primary",
        disabled=not S.has_annotation_changes(state),
        use_container_width=True,
    ):
        _save_annotation(run)
        st.rerun()

    nav_l, nav_r = st.columns(2)
    with nav_l:
        if st.button("⬅️ Prev", disabled=idx <= 0, use_container_width=True):
            dispatch(S.step_run, runs, -1)
            st.rerun()
    with nav_r:
        if st.button("Next ➡️", disabled=idx < 0 or idx >= len(runs) - 1, use_container_width=True):
            dispatch(S.step_run, runs, 1)
            st.rerun()


def _render_overview(queue: dict[str, Any], runs: list[dict[str, Any]]) -> None:
    state = get_state()
    annotators = S.queue_annotators(queue)

    with st.expander("👥 Annotators", expanded=False):
        if not annotators:
            st.caption("Nobody has annotated this queue yet.")
        else:
            st.altair_chart(annotation_status_chart(judgement_counts(runs, annotators)), width="stretch")
            view = st.selectbox(
                "Show judgements by",
                options=[""] + annotators,
                index=([""] + annotators).index(state.annotator_view) if state.annotator_view in annotators else 0,
                format_func=lambda a: a or "Select annotator",
            )
            if view != state.annotator_view:
                dispatch(S.set_annotator_view, view)
                st.rerun()
            if view:
                rows = [r for r in queue_annotation_rows(queue) if r["reviewer"] == view]
                st.dataframe(rows, hide_index=True, width="stretch")

        rows = queue_annotation_rows(queue)
        st.download_button(
            label="⬇️ Download annotations CSV",
            data=csv_bytes_any(rows),
            file_name=f"{queue.get('name') or queue.get('id')}_annotations.csv",
            mime="text/csv",
            key="queue_annotations_csv",
            disabled=not rows,
            use_container_width=True,
        )

    if st.button("🗑️ Delete queue", key="delete_queue"):
        try:
            queues = get_backend().delete_queue(queue["id"])
        except Exception as e:
            toast("error", f"Error deleting queue. Please try again. ({e})")
            return
        st.session_state.queues = queues
        dispatch(S.queue_deleted, queue["id"])
        toast("success", "Queue deleted")
        st.rerun()


def render(queues: list[dict[str, Any]]) -> None:
    """Render the Queues tab."""
    col_list, col_main = st.columns([1, 3], gap="large")

    with col_list:
        _render_queue_list(queues)

    state = get_state()
    queue = find_by_id(queues, state.selected_queue_id)
    if queue is None:
        with col_main:
            st.info("Select a queue to start annotating.")
        return

    runs = S.sort_runs(
        queue.get("runs") or [],
        state.queue_sort_by,
        state.queue_sort_order,
        by_display_time=True,
    )
    if not runs:
        with col_main:
            st.info("This queue has no runs.")
        return

    run = find_by_id(runs, state.selected_run_id)
    if run is None:
        state = dispatch(S.select_run, runs[0])
        run = runs[0]

    with col_main:
        st.markdown(f"#### {queue.get('name')}")
        st.caption(f"Created by {queue.get('created_by') or '—'} · {len(runs)} runs")
        _render_overview(queue, runs)

        col_content, col_controls = st.columns([13, 8], gap="small")
        with col_content:
            _render_messages(run)
            _render_context(run)
        with col_controls:
            _render_annotator(run, runs)
