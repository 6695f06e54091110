"""Tab modules for the Streamlit app."""

from tabs.runs import render as render_runs
from tabs.queues import render as render_queues

__all__ = [
    "render_runs",
    "render_queues",
]
