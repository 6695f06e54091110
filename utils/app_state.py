"""Review page state as immutable snapshots, plus the filtering and sorting views over runs.

Every handler takes the current ReviewState and returns a new one; the
Streamlit layer only stores the latest snapshot in session state.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from utils.data_helpers import parse_iso_dt

STAGES = ("router", "query_rewrite", "feedback")
TIME_FILTERS = ("all", "today", "yesterday", "last7days", "last30days", "custom")
ANNOTATION_FILTERS = ("all", "annotated", "unannotated", "correct", "wrong")
SORT_KEYS = ("timestamp", "org", "task_id")

# facet name -> path inside a run's metadata
FACETS: dict[str, tuple[str, ...]] = {
    "org": ("org", "name"),
    "course": ("course", "name"),
    "milestone": ("milestone", "name"),
    "question_input_type": ("question_input_type",),
    "question_purpose": ("question_purpose",),
    "question_type": ("question_type",),
    "type": ("type",),
    "stage": ("stage",),
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Filters:
    org: tuple[str, ...] = ()
    course: tuple[str, ...] = ()
    milestone: tuple[str, ...] = ()
    question_input_type: tuple[str, ...] = ()
    question_purpose: tuple[str, ...] = ()
    question_type: tuple[str, ...] = ()
    type: tuple[str, ...] = ()
    stage: tuple[str, ...] = ()
    annotation: str = "all"
    time_filter: str = "all"
    start_date: str = ""
    end_date: str = ""


@dataclass(frozen=True)
class ReviewState:
    current_user: str = ""
    active_tab: str = "runs"
    filters: Filters = field(default_factory=Filters)
    org_search: str = ""
    course_search: str = ""
    milestone_search: str = ""
    sort_by: str = "timestamp"
    sort_order: str = "desc"
    queue_sort_by: str = "timestamp"
    queue_sort_order: str = "desc"
    selected_queue_id: str | None = None
    selected_run_id: str | None = None
    current_judgement: str | None = None
    annotation_notes: str = ""
    original_judgement: str | None = None
    original_notes: str = ""
    annotator_view: str = ""


def facet_value(run: dict[str, Any], facet: str) -> str | None:
    current: Any = run.get("metadata") or {}
    for key in FACETS[facet]:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    if current is None or current == "":
        return None
    return str(current)


def _unique(values: list[str | None]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return out


def _matches(run: dict[str, Any], facet: str, selected: tuple[str, ...] | list[str]) -> bool:
    value = facet_value(run, facet)
    return value is not None and value in selected


# --- reducers ---------------------------------------------------------------


def login(state: ReviewState, user: str) -> ReviewState:
    return ReviewState(current_user=user)


def logout(state: ReviewState) -> ReviewState:
    return ReviewState()


def select_tab(state: ReviewState, tab: str) -> ReviewState:
    if tab not in ("runs", "queues"):
        raise ValueError(f"Unknown tab {tab!r}")
    return replace(state, active_tab=tab)


def set_search(state: ReviewState, facet: str, text: str) -> ReviewState:
    if facet not in ("org", "course", "milestone"):
        raise ValueError(f"No search box for facet {facet!r}")
    return replace(state, **{f"{facet}_search": text or ""})


def set_sort(state: ReviewState, sort_by: str, sort_order: str, *, queue: bool = False) -> ReviewState:
    if sort_by not in SORT_KEYS or sort_order not in ("asc", "desc"):
        raise ValueError(f"Invalid sort {sort_by!r} {sort_order!r}")
    if queue:
        return replace(state, queue_sort_by=sort_by, queue_sort_order=sort_order)
    return replace(state, sort_by=sort_by, sort_order=sort_order)


def toggle_filter_value(
    state: ReviewState,
    conversations: list[dict[str, Any]],
    facet: str,
    value: str,
) -> ReviewState:
    """Add or remove one facet value.

    Changing organisations drops selected courses and milestones that no
    longer occur under the new selection; changing courses does the same
    for milestones.
    """
    if facet not in FACETS:
        raise ValueError(f"Unknown facet {facet!r}")
    f = state.filters
    current: tuple[str, ...] = getattr(f, facet)
    new_values = tuple(v for v in current if v != value) if value in current else (*current, value)

    if facet == "org":
        in_orgs = [c for c in conversations if not new_values or _matches(c, "org", new_values)]
        valid_courses = {facet_value(c, "course") for c in in_orgs}
        courses = tuple(c for c in f.course if c in valid_courses)
        valid_milestones = {
            facet_value(c, "milestone")
            for c in in_orgs
            if not courses or _matches(c, "course", courses)
        }
        milestones = tuple(m for m in f.milestone if m in valid_milestones)
        f = replace(f, org=new_values, course=courses, milestone=milestones)
    elif facet == "course":
        valid_milestones = {
            facet_value(c, "milestone")
            for c in conversations
            if not new_values or _matches(c, "course", new_values)
        }
        milestones = tuple(m for m in f.milestone if m in valid_milestones)
        f = replace(f, course=new_values, milestone=milestones)
    else:
        f = replace(f, **{facet: new_values})

    return replace(state, filters=f)


def set_time_filter(state: ReviewState, time_filter: str) -> ReviewState:
    if time_filter not in TIME_FILTERS:
        raise ValueError(f"Unknown time filter {time_filter!r}")
    f = state.filters
    keep = time_filter == "custom"
    return replace(
        state,
        filters=replace(
            f,
            time_filter=time_filter,
            start_date=f.start_date if keep else "",
            end_date=f.end_date if keep else "",
        ),
    )


def set_custom_dates(state: ReviewState, start_date: str, end_date: str) -> ReviewState:
    return replace(state, filters=replace(state.filters, start_date=start_date or "", end_date=end_date or ""))


def set_annotation_filter(state: ReviewState, value: str) -> ReviewState:
    if value not in ANNOTATION_FILTERS:
        raise ValueError(f"Unknown annotation filter {value!r}")
    return replace(state, filters=replace(state.filters, annotation=value))


def clear_filters(state: ReviewState) -> ReviewState:
    return replace(state, filters=Filters(), org_search="", course_search="", milestone_search="")


def _reviewer_annotation(run: dict[str, Any] | None, reviewer: str) -> dict[str, Any]:
    if not run:
        return {}
    return (run.get("annotations") or {}).get(reviewer) or {}


def select_queue(state: ReviewState, queue_id: str | None) -> ReviewState:
    return replace(
        state,
        selected_queue_id=queue_id,
        selected_run_id=None,
        current_judgement=None,
        annotation_notes="",
        original_judgement=None,
        original_notes="",
        annotator_view="",
    )


def select_run(state: ReviewState, run: dict[str, Any] | None) -> ReviewState:
    """Focus a run and load the current reviewer's saved judgement into the editor."""
    ann = _reviewer_annotation(run, state.current_user)
    judgement = ann.get("judgement")
    notes = ann.get("notes") or ""
    return replace(
        state,
        selected_run_id=run.get("id") if run else None,
        current_judgement=judgement,
        annotation_notes=notes,
        original_judgement=judgement,
        original_notes=notes,
    )


def current_run_index(state: ReviewState, runs: list[dict[str, Any]]) -> int:
    if not state.selected_run_id:
        return -1
    for i, r in enumerate(runs):
        if r.get("id") == state.selected_run_id:
            return i
    return -1


def step_run(state: ReviewState, runs: list[dict[str, Any]], delta: int) -> ReviewState:
    """Move to the next (delta=1) or previous (delta=-1) run; out-of-range moves are ignored."""
    idx = current_run_index(state, runs)
    if idx < 0:
        return state
    target = idx + delta
    if target < 0 or target >= len(runs):
        return state
    return select_run(state, runs[target])


def set_judgement(state: ReviewState, judgement: str | None) -> ReviewState:
    if judgement not in (None, "correct", "wrong"):
        raise ValueError(f"Unknown judgement {judgement!r}")
    return replace(state, current_judgement=judgement)


def set_notes(state: ReviewState, notes: str) -> ReviewState:
    return replace(state, annotation_notes=notes or "")


def set_annotator_view(state: ReviewState, annotator: str) -> ReviewState:
    return replace(state, annotator_view=annotator or "")


def mark_annotation_saved(state: ReviewState) -> ReviewState:
    notes = state.annotation_notes.strip()
    return replace(
        state,
        annotation_notes=notes,
        original_judgement=state.current_judgement,
        original_notes=notes,
    )


def queue_created(state: ReviewState, queue: dict[str, Any]) -> ReviewState:
    return replace(select_queue(state, queue.get("id")), active_tab="queues")


def queue_deleted(state: ReviewState, queue_id: str) -> ReviewState:
    if state.selected_queue_id == queue_id:
        return select_queue(state, None)
    return state


def has_annotation_changes(state: ReviewState) -> bool:
    return (
        state.current_judgement != state.original_judgement
        or state.annotation_notes.strip() != state.original_notes.strip()
    )


# --- derived views ----------------------------------------------------------


def run_start_dt(run: dict[str, Any]) -> datetime:
    return parse_iso_dt(run.get("start_time") or run.get("createdAt")) or _EPOCH


def display_timestamp(run: dict[str, Any]) -> str:
    return run.get("end_time") or run.get("createdAt") or ""


def time_filter_range(time_filter: str, now: datetime | None = None) -> tuple[datetime, datetime] | None:
    """Return the (start, end) window for a preset filter in local time, or None."""
    now = (now or datetime.now()).astimezone()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    one_day = timedelta(days=1)

    if time_filter == "today":
        return today, today + one_day - timedelta(microseconds=1)
    if time_filter == "yesterday":
        yesterday = today - one_day
        return yesterday, yesterday + one_day - timedelta(microseconds=1)
    if time_filter == "last7days":
        return today - 7 * one_day, now
    if time_filter == "last30days":
        return today - 30 * one_day, now
    return None


def _custom_range(start_date: str, end_date: str, tz: Any) -> tuple[datetime, datetime] | None:
    try:
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
    except ValueError:
        return None
    return (
        datetime.combine(start, time.min, tzinfo=tz),
        datetime.combine(end, time.max, tzinfo=tz),
    )


def filter_options(
    conversations: list[dict[str, Any]],
    filters: Filters,
    org_search: str = "",
    course_search: str = "",
    milestone_search: str = "",
) -> dict[str, list[str]]:
    """Values offered in each facet picker; courses and milestones narrow with the selection above them."""
    orgs = _unique([facet_value(c, "org") for c in conversations])

    if filters.org:
        courses = _unique([facet_value(c, "course") for c in conversations if _matches(c, "org", filters.org)])
    else:
        courses = _unique([facet_value(c, "course") for c in conversations])

    if filters.course:
        milestones = _unique(
            [facet_value(c, "milestone") for c in conversations if _matches(c, "course", filters.course)]
        )
    elif filters.org:
        milestones = _unique([facet_value(c, "milestone") for c in conversations if _matches(c, "org", filters.org)])
    else:
        milestones = _unique([facet_value(c, "milestone") for c in conversations])

    def _search(values: list[str], needle: str) -> list[str]:
        n = (needle or "").lower()
        return [v for v in values if n in v.lower()]

    return {
        "org": _search(orgs, org_search),
        "course": _search(courses, course_search),
        "milestone": _search(milestones, milestone_search),
        "question_input_type": _unique([facet_value(c, "question_input_type") for c in conversations]),
        "question_purpose": _unique([facet_value(c, "question_purpose") for c in conversations]),
        "question_type": _unique([facet_value(c, "question_type") for c in conversations]),
        "type": _unique([facet_value(c, "type") for c in conversations]),
        "stage": list(STAGES),
    }


def _annotation_matches(run: dict[str, Any], mode: str, reviewer: str) -> bool:
    ann = (run.get("annotations") or {}).get(reviewer)
    if mode == "annotated":
        return ann is not None
    if mode == "unannotated":
        return ann is None
    if mode in ("correct", "wrong"):
        return bool(ann) and ann.get("judgement") == mode
    return True


def _sort_key(run: dict[str, Any], sort_by: str, by_display_time: bool) -> Any:
    if sort_by == "org":
        return facet_value(run, "org") or ""
    if sort_by == "task_id":
        task_id = (run.get("metadata") or {}).get("task_id")
        return task_id if isinstance(task_id, (int, float)) else 0
    if by_display_time:
        return parse_iso_dt(display_timestamp(run)) or _EPOCH
    return run_start_dt(run)


def sort_runs(
    runs: list[dict[str, Any]],
    sort_by: str = "timestamp",
    sort_order: str = "desc",
    *,
    by_display_time: bool = False,
) -> list[dict[str, Any]]:
    """Stable sort of runs; queue views sort on end_time/createdAt (by_display_time=True)."""
    return sorted(
        runs,
        key=lambda r: _sort_key(r, sort_by, by_display_time),
        reverse=sort_order == "desc",
    )


def filter_conversations(
    conversations: list[dict[str, Any]],
    filters: Filters,
    current_user: str,
    sort_by: str = "timestamp",
    sort_order: str = "desc",
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Apply time, facet and annotation filters, then sort."""
    out = list(conversations)
    now_local = (now or datetime.now()).astimezone()

    window = time_filter_range(filters.time_filter, now_local)
    if filters.time_filter == "custom" and filters.start_date and filters.end_date:
        window = _custom_range(filters.start_date, filters.end_date, now_local.tzinfo)
    if window:
        start, end = window
        out = [c for c in out if start <= run_start_dt(c) <= end]

    for facet in FACETS:
        selected = getattr(filters, facet)
        if selected:
            out = [c for c in out if _matches(c, facet, selected)]

    if filters.annotation != "all":
        out = [c for c in out if _annotation_matches(c, filters.annotation, current_user)]

    return sort_runs(out, sort_by, sort_order)


def annotation_progress(runs: list[dict[str, Any]], reviewer: str) -> tuple[int, int]:
    annotated = sum(1 for r in runs if (r.get("annotations") or {}).get(reviewer))
    return annotated, len(runs)


def queue_annotators(queue: dict[str, Any] | None) -> list[str]:
    if not queue:
        return []
    names: set[str] = set()
    for run in queue.get("runs") or []:
        names.update((run.get("annotations") or {}).keys())
    return sorted(names)
