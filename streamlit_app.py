import logging
import os

import streamlit as st

from tabs import render_queues, render_runs
from utils.app_state import ReviewState, select_tab
from utils.shared_ui import (
    check_authentication,
    configure_page,
    dispatch,
    get_backend,
    get_state,
    load_documents,
    sign_out,
)

TAB_LABELS = {
    "runs": "📋 Runs",
    "queues": "✅ Annotation queues",
}


def main() -> None:
    configure_page()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not check_authentication():
        return

    state: ReviewState = get_state()
    backend = get_backend()
    conversations, queues = load_documents()

    with st.sidebar:
        st.title("🧑‍⚖️ SensAI Eval `v0.1`")
        st.caption("Review AI tutor runs and build annotation queues.")
        st.markdown(
            "**ℹ️ What this tool does**\n\n"
            "- **📤 Upload** span exports (CSV) into the shared run list\n"
            "- **🔎 Filter** runs by org, course, milestone and question facets\n"
            "- **✅ Annotate** queued runs as correct or wrong, with notes\n"
        )

        st.markdown("---")
        st.markdown(f"**👤 Signed in as** `{state.current_user}`")
        st.caption(f"Backend: `{type(backend).__name__}`")
        st.caption(f"{len(conversations):,} runs · {len(queues):,} queues")

        c_refresh, c_logout = st.columns(2)
        with c_refresh:
            if st.button("🔄 Refresh", use_container_width=True):
                load_documents(force=True)
                st.rerun()
        with c_logout:
            if st.button("🚪 Logout", type="primary", use_container_width=True):
                sign_out()

    active = st.radio(
        "View",
        options=list(TAB_LABELS),
        index=list(TAB_LABELS).index(state.active_tab) if state.active_tab in TAB_LABELS else 0,
        format_func=lambda k: TAB_LABELS[k],
        horizontal=True,
        label_visibility="collapsed",
    )
    if active != state.active_tab:
        dispatch(select_tab, active)
        st.rerun()

    if active == "runs":
        render_runs(conversations)
    else:
        render_queues(queues)


if __name__ == "__main__":
    main()
