"""
Tests for variable change detection and the dependency gate.
"""

from panel_loader.domain.models import (
    AD_HOC_FILTERS,
    AdHocFilter,
    QueryDefinition,
    VariableBinding,
)
from panel_loader.loader.changes import ChangeDetector, can_run, dependent_variables

QUERIES = [QueryDefinition(query="SELECT * FROM t WHERE r = '$region'")]


def _var(name, value, loading=False):
    return VariableBinding(name=name, value=value, is_loading=loading)


def _ad_hoc(*filters):
    return VariableBinding(
        name="Filters",
        type=AD_HOC_FILTERS,
        value=[AdHocFilter(name=n, operator="=", value=v) for n, v in filters],
    )


class TestBoundVariables:
    """Test change detection for referenced scalar variables."""

    def test_same_value_is_not_a_change(self):
        detector = ChangeDetector([_var("region", "eu")])
        assert not detector.variables_changed([_var("region", "eu")], QUERIES)

    def test_new_value_is_a_change_and_updates_baseline(self):
        detector = ChangeDetector([_var("region", "eu")])
        assert detector.variables_changed([_var("region", "us")], QUERIES)
        assert detector.last_bound_variables[0].value == "us"
        assert not detector.variables_changed([_var("region", "us")], QUERIES)

    def test_empty_baseline_always_counts_as_change(self):
        """An empty previous value is never "the same", even against ""."""
        detector = ChangeDetector([_var("region", "")])
        assert detector.variables_changed([_var("region", "")], QUERIES)

    def test_variable_missing_from_baseline_is_a_change(self):
        detector = ChangeDetector([])
        assert detector.variables_changed([_var("region", "eu")], QUERIES)

    def test_unreferenced_variable_is_ignored(self):
        detector = ChangeDetector([_var("region", "eu"), _var("other", "a")])
        assert not detector.variables_changed(
            [_var("region", "eu"), _var("other", "b")], QUERIES
        )

    def test_no_queries_never_changes(self):
        detector = ChangeDetector([])
        assert not detector.variables_changed([_var("region", "eu")], [])

    def test_baselines_are_immutable_snapshots(self):
        detector = ChangeDetector([_var("region", "eu")])
        assert isinstance(detector.last_bound_variables, tuple)


class TestAdHocFilters:
    """Test change detection for ad-hoc filters."""

    def test_filter_added_is_a_change(self):
        detector = ChangeDetector([_ad_hoc(("env", "prod"))])
        assert detector.ad_hoc_filters_changed(
            [_ad_hoc(("env", "prod"), ("host", "a"))]
        )
        assert len(detector.last_ad_hoc_filters) == 2

    def test_filter_removed_is_a_change(self):
        detector = ChangeDetector([_ad_hoc(("env", "prod"))])
        assert detector.ad_hoc_filters_changed([_ad_hoc()])
        assert detector.last_ad_hoc_filters == ()

    def test_same_filters_are_not_a_change(self):
        detector = ChangeDetector([_ad_hoc(("env", "prod"))])
        assert not detector.ad_hoc_filters_changed([_ad_hoc(("env", "prod"))])

    def test_filter_value_change(self):
        detector = ChangeDetector([_ad_hoc(("env", "prod"))])
        assert detector.ad_hoc_filters_changed([_ad_hoc(("env", "dev"))])

    def test_no_filters_on_either_side(self):
        detector = ChangeDetector([])
        assert not detector.ad_hoc_filters_changed([])

    def test_ad_hoc_change_reported_with_unchanged_bound(self):
        detector = ChangeDetector([_var("region", "eu")])
        assert detector.variables_changed(
            [_var("region", "eu"), _ad_hoc(("env", "prod"))], QUERIES
        )


class TestDependencyGate:
    """Test can_run."""

    def test_loading_referenced_variable_blocks(self):
        assert not can_run([_var("region", "eu", loading=True)], QUERIES)

    def test_loading_unreferenced_variable_does_not_block(self):
        assert can_run([_var("other", "x", loading=True)], QUERIES)

    def test_loading_ad_hoc_does_not_block(self):
        filters = _ad_hoc(("env", "prod")).model_copy(update={"is_loading": True})
        assert can_run([filters], QUERIES)

    def test_dependent_variables(self):
        variables = [_var("region", "eu"), _var("other", "x")]
        assert [v.name for v in dependent_variables(variables, QUERIES)] == ["region"]
