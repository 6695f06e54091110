"""Tests for review page reducers and the run filtering views."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from utils import app_state as S
from utils.data_helpers import iso_utc

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _run(
    run_id: str,
    org: str | None = None,
    course: str | None = None,
    milestone: str | None = None,
    start: datetime | None = None,
    annotations: dict[str, Any] | None = None,
    **meta: Any,
) -> dict[str, Any]:
    metadata: dict[str, Any] = dict(meta)
    if org:
        metadata["org"] = {"name": org}
    if course:
        metadata["course"] = {"name": course}
    if milestone:
        metadata["milestone"] = {"name": milestone}
    run: dict[str, Any] = {"id": run_id, "metadata": metadata}
    if start:
        run["start_time"] = iso_utc(start)
    if annotations:
        run["annotations"] = annotations
    return run


CONVERSATIONS = [
    _run("r1", org="Acme", course="Python", milestone="Loops", stage="feedback", task_id=3),
    _run("r2", org="Acme", course="SQL", milestone="Joins", stage="router", task_id=1),
    _run("r3", org="Globex", course="Python", milestone="Classes", stage="feedback", task_id=2),
]


# ---------------------------------------------------------------------------
# Session and navigation
# ---------------------------------------------------------------------------


class TestSession:
    def test_login_starts_fresh(self):
        state = S.set_search(S.ReviewState(current_user="old"), "org", "ac")
        state = S.login(state, "Aman")
        assert state == S.ReviewState(current_user="Aman")

    def test_logout_clears_everything(self):
        state = S.select_queue(S.login(S.ReviewState(), "Aman"), "q1")
        assert S.logout(state) == S.ReviewState()

    def test_select_tab_validates(self):
        assert S.select_tab(S.ReviewState(), "queues").active_tab == "queues"
        with pytest.raises(ValueError):
            S.select_tab(S.ReviewState(), "settings")

    def test_set_sort(self):
        state = S.set_sort(S.ReviewState(), "org", "asc")
        assert (state.sort_by, state.sort_order) == ("org", "asc")
        state = S.set_sort(state, "task_id", "desc", queue=True)
        assert (state.queue_sort_by, state.queue_sort_order) == ("task_id", "desc")
        assert state.sort_by == "org"
        with pytest.raises(ValueError):
            S.set_sort(state, "colour", "asc")

    def test_state_is_immutable(self):
        state = S.ReviewState()
        with pytest.raises(Exception):
            state.current_user = "x"


# ---------------------------------------------------------------------------
# Facet filters
# ---------------------------------------------------------------------------


class TestFacetFilters:
    def test_toggle_adds_and_removes(self):
        state = S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "stage", "feedback")
        assert state.filters.stage == ("feedback",)
        state = S.toggle_filter_value(state, CONVERSATIONS, "stage", "feedback")
        assert state.filters.stage == ()

    def test_org_change_prunes_courses_and_milestones(self):
        state = S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "course", "SQL")
        state = S.toggle_filter_value(state, CONVERSATIONS, "milestone", "Joins")
        state = S.toggle_filter_value(state, CONVERSATIONS, "org", "Globex")

        assert state.filters.org == ("Globex",)
        assert state.filters.course == ()
        assert state.filters.milestone == ()

    def test_org_change_keeps_courses_still_present(self):
        state = S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "course", "Python")
        state = S.toggle_filter_value(state, CONVERSATIONS, "milestone", "Loops")
        state = S.toggle_filter_value(state, CONVERSATIONS, "org", "Acme")

        assert state.filters.course == ("Python",)
        assert state.filters.milestone == ("Loops",)

    def test_course_change_prunes_milestones(self):
        state = S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "milestone", "Joins")
        state = S.toggle_filter_value(state, CONVERSATIONS, "course", "Python")
        assert state.filters.milestone == ()

    def test_unknown_facet(self):
        with pytest.raises(ValueError):
            S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "colour", "red")

    def test_clear_filters(self):
        state = S.toggle_filter_value(S.ReviewState(), CONVERSATIONS, "org", "Acme")
        state = S.set_search(state, "course", "py")
        state = S.clear_filters(state)
        assert state.filters == S.Filters()
        assert state.course_search == ""

    def test_time_filter_resets_custom_dates(self):
        state = S.set_time_filter(S.ReviewState(), "custom")
        state = S.set_custom_dates(state, "2025-01-01", "2025-01-31")
        assert S.set_time_filter(state, "custom").filters.start_date == "2025-01-01"
        assert S.set_time_filter(state, "today").filters.start_date == ""


class TestFilterOptions:
    def test_courses_narrow_with_org(self):
        filters = S.Filters(org=("Acme",))
        options = S.filter_options(CONVERSATIONS, filters)
        assert options["org"] == ["Acme", "Globex"]
        assert options["course"] == ["Python", "SQL"]
        assert options["milestone"] == ["Loops", "Joins"]

    def test_milestones_narrow_with_course(self):
        options = S.filter_options(CONVERSATIONS, S.Filters(course=("Python",)))
        assert options["milestone"] == ["Loops", "Classes"]

    def test_search_is_case_insensitive_substring(self):
        options = S.filter_options(CONVERSATIONS, S.Filters(), org_search="GLO")
        assert options["org"] == ["Globex"]

    def test_stage_options_are_fixed(self):
        assert S.filter_options([], S.Filters())["stage"] == ["router", "query_rewrite", "feedback"]


# ---------------------------------------------------------------------------
# Filtering and sorting
# ---------------------------------------------------------------------------


class TestFilterConversations:
    def test_facets_combine(self):
        filters = S.Filters(course=("Python",), stage=("feedback",), org=("Globex",))
        out = S.filter_conversations(CONVERSATIONS, filters, "Aman", now=NOW)
        assert [r["id"] for r in out] == ["r3"]

    def test_annotation_modes(self):
        runs = [
            _run("a", annotations={"Aman": {"judgement": "correct"}}),
            _run("b", annotations={"Aman": {"judgement": "wrong"}}),
            _run("c", annotations={"Piyush": {"judgement": "wrong"}}),
            _run("d"),
        ]

        def ids(mode: str) -> list[str]:
            out = S.filter_conversations(runs, S.Filters(annotation=mode), "Aman", sort_by="org", sort_order="asc", now=NOW)
            return sorted(r["id"] for r in out)

        assert ids("all") == ["a", "b", "c", "d"]
        assert ids("annotated") == ["a", "b"]
        assert ids("unannotated") == ["c", "d"]
        assert ids("correct") == ["a"]
        assert ids("wrong") == ["b"]

    def test_preset_time_windows(self):
        now = datetime.now(timezone.utc)
        local_midnight = now.astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
        runs = [
            _run("now", start=now),
            _run("yesterday", start=local_midnight - timedelta(hours=1)),
            _run("last_week", start=now - timedelta(days=3)),
            _run("old", start=now - timedelta(days=45)),
        ]

        def ids(time_filter: str) -> set[str]:
            return {r["id"] for r in S.filter_conversations(runs, S.Filters(time_filter=time_filter), "Aman", now=now)}

        assert ids("today") == {"now"}
        assert ids("yesterday") == {"yesterday"}
        assert ids("last7days") == {"now", "yesterday", "last_week"}
        assert ids("last30days") == {"now", "yesterday", "last_week"}
        assert ids("all") == {"now", "yesterday", "last_week", "old"}

    def test_custom_range_includes_whole_end_day(self):
        tz = NOW.astimezone().tzinfo
        runs = [
            _run("in", start=datetime(2025, 1, 31, 23, 30, tzinfo=tz)),
            _run("out", start=datetime(2025, 2, 1, 0, 30, tzinfo=tz)),
        ]
        filters = S.Filters(time_filter="custom", start_date="2025-01-01", end_date="2025-01-31")
        out = S.filter_conversations(runs, filters, "Aman", now=NOW)
        assert [r["id"] for r in out] == ["in"]

    def test_custom_without_dates_keeps_everything(self):
        filters = S.Filters(time_filter="custom")
        assert len(S.filter_conversations(CONVERSATIONS, filters, "Aman", now=NOW)) == 3

    def test_sort_by_timestamp_desc_by_default(self):
        runs = [_run("old", start=NOW - timedelta(days=2)), _run("new", start=NOW)]
        assert [r["id"] for r in S.filter_conversations(runs, S.Filters(), "Aman", now=NOW)] == ["new", "old"]

    def test_sort_by_task_id(self):
        out = S.sort_runs(CONVERSATIONS, "task_id", "asc")
        assert [r["id"] for r in out] == ["r2", "r3", "r1"]

    def test_queue_sort_uses_end_time(self):
        runs = [
            {"id": "a", "start_time": "2025-01-02T00:00:00Z", "end_time": "2025-01-01T00:00:00Z"},
            {"id": "b", "start_time": "2025-01-01T00:00:00Z", "end_time": "2025-01-03T00:00:00Z"},
        ]
        assert [r["id"] for r in S.sort_runs(runs, by_display_time=True)] == ["b", "a"]
        assert [r["id"] for r in S.sort_runs(runs)] == ["a", "b"]


# ---------------------------------------------------------------------------
# Queue annotation editor
# ---------------------------------------------------------------------------


class TestAnnotationEditor:
    RUNS = [
        _run("r1", annotations={"Aman": {"judgement": "correct", "notes": "fine"}}),
        _run("r2"),
        _run("r3"),
    ]

    def _state(self) -> S.ReviewState:
        return S.select_queue(S.login(S.ReviewState(), "Aman"), "q1")

    def test_select_run_loads_saved_annotation(self):
        state = S.select_run(self._state(), self.RUNS[0])
        assert state.selected_run_id == "r1"
        assert (state.current_judgement, state.annotation_notes) == ("correct", "fine")
        assert not S.has_annotation_changes(state)

    def test_editing_marks_changes_until_saved(self):
        state = S.select_run(self._state(), self.RUNS[1])
        state = S.set_judgement(state, "wrong")
        state = S.set_notes(state, "  off  ")
        assert S.has_annotation_changes(state)

        state = S.mark_annotation_saved(state)
        assert not S.has_annotation_changes(state)
        assert state.annotation_notes == "off"

    def test_whitespace_only_note_edit_is_not_a_change(self):
        state = S.select_run(self._state(), self.RUNS[0])
        state = S.set_notes(state, "fine  ")
        assert not S.has_annotation_changes(state)

    def test_set_judgement_validates(self):
        with pytest.raises(ValueError):
            S.set_judgement(self._state(), "unsure")

    def test_step_run_stays_in_bounds(self):
        state = S.select_run(self._state(), self.RUNS[0])
        assert S.step_run(state, self.RUNS, -1) == state
        state = S.step_run(state, self.RUNS, 1)
        assert state.selected_run_id == "r2"
        assert state.current_judgement is None
        state = S.step_run(S.step_run(state, self.RUNS, 1), self.RUNS, 1)
        assert state.selected_run_id == "r3"

    def test_step_without_selection_is_ignored(self):
        state = self._state()
        assert S.step_run(state, self.RUNS, 1) == state

    def test_queue_created_switches_tab(self):
        state = S.queue_created(self._state(), {"id": "q9"})
        assert (state.active_tab, state.selected_queue_id) == ("queues", "q9")

    def test_queue_deleted_clears_selection(self):
        state = S.select_run(self._state(), self.RUNS[0])
        assert S.queue_deleted(state, "other") == state
        cleared = S.queue_deleted(state, "q1")
        assert cleared.selected_queue_id is None
        assert cleared.selected_run_id is None


class TestProgress:
    def test_annotation_progress_and_annotators(self):
        queue = {"runs": [_run("a", annotations={"Piyush": {}, "Aman": {"judgement": "wrong"}}), _run("b")]}
        assert S.annotation_progress(queue["runs"], "Aman") == (1, 2)
        assert S.queue_annotators(queue) == ["Aman", "Piyush"]
        assert S.queue_annotators(None) == []
