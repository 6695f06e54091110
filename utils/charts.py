"""Chart utilities for the Streamlit app."""

from typing import Any

import altair as alt
import pandas as pd

JUDGEMENT_COLORS = {
    "Correct": "#22c55e",
    "Wrong": "#ef4444",
    "Not annotated": "#d1d5db",
}


def judgement_counts(runs: list[dict[str, Any]], annotators: list[str]) -> pd.DataFrame:
    """Count correct / wrong / not-annotated runs per annotator."""
    rows: list[dict[str, Any]] = []
    for name in annotators:
        correct = wrong = 0
        for run in runs:
            ann = (run.get("annotations") or {}).get(name) or {}
            if ann.get("judgement") == "correct":
                correct += 1
            elif ann.get("judgement") == "wrong":
                wrong += 1
        rows.extend(
            [
                {"annotator": name, "status": "Correct", "runs": correct},
                {"annotator": name, "status": "Wrong", "runs": wrong},
                {"annotator": name, "status": "Not annotated", "runs": len(runs) - correct - wrong},
            ]
        )
    return pd.DataFrame(rows, columns=["annotator", "status", "runs"])


def annotation_status_chart(counts: pd.DataFrame) -> alt.Chart:
    """Create stacked horizontal bars of judgement status per annotator."""
    order = list(JUDGEMENT_COLORS.keys())
    return (
        alt.Chart(counts)
        .mark_bar()
        .encode(
            y=alt.Y("annotator:N", title="Annotator"),
            x=alt.X("runs:Q", title="Runs", stack="zero"),
            color=alt.Color(
                "status:N",
                title="Judgement",
                sort=order,
                scale=alt.Scale(domain=order, range=[JUDGEMENT_COLORS[k] for k in order]),
            ),
            order=alt.Order("status:N", sort="ascending"),
            tooltip=[
                alt.Tooltip("annotator:N", title="Annotator"),
                alt.Tooltip("status:N", title="Judgement"),
                alt.Tooltip("runs:Q", title="Runs", format=","),
            ],
        )
        .properties(title="Annotation status by annotator")
    )
