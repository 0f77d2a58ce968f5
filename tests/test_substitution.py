"""
Tests for template variable substitution.
"""

from types import SimpleNamespace

import pytest

from panel_loader.domain.models import AD_HOC_FILTERS, AdHocFilter, VariableBinding
from panel_loader.loader.substitution import (
    VariableSubstitutor,
    collect_ad_hoc_filters,
    stringify_value,
)

START = 1_700_000_000_000
HOUR = 3_600_000
WEEK = 7 * 24 * HOUR


def _ad_hoc(*filters):
    return VariableBinding(
        name="Filters",
        type=AD_HOC_FILTERS,
        value=[AdHocFilter(name=n, operator=o, value=v) for n, o, v in filters],
    )


@pytest.fixture
def substitutor():
    return VariableSubstitutor(SimpleNamespace(width=100))


class TestFixedVariables:
    """Test time-derived variables."""

    def test_values_for_one_week(self, substitutor):
        assert substitutor.fixed_variables(START, START + WEEK) == [
            ("__interval_ms", "5000ms"),
            ("__interval", "5s"),
            ("__rate_interval", "1m"),
        ]

    def test_all_fixed_tokens_replaced_in_order(self, substitutor):
        query, ledger = substitutor.substitute_time_and_bound_variables(
            "rate(x[$__rate_interval]) step $__interval_ms bucket $__interval",
            START,
            START + WEEK,
            "promql",
        )
        assert query == "rate(x[1m]) step 5000ms bucket 5s"
        assert [(e.type, e.name, e.value) for e in ledger] == [
            ("fixed", "__interval_ms", "5000ms"),
            ("fixed", "__interval", "5s"),
            ("fixed", "__rate_interval", "1m"),
        ]

    def test_absent_token_leaves_text_and_ledger_untouched(self, substitutor):
        query, ledger = substitutor.substitute_time_and_bound_variables(
            "SELECT * FROM t", START, START + HOUR, "sql"
        )
        assert query == "SELECT * FROM t"
        assert ledger == []

    def test_missing_viewport_uses_default_width(self):
        substitutor = VariableSubstitutor(None)
        assert substitutor.fixed_variables(START, START + HOUR)[1] == ("__interval", "1ms")
        assert substitutor.fixed_variables(START, START + WEEK)[1] == (
            "__interval",
            "500ms",
        )

    def test_viewport_without_width_uses_default(self):
        substitutor = VariableSubstitutor(SimpleNamespace(width=None), default_width=100)
        assert substitutor.fixed_variables(START, START + WEEK)[1] == (
            "__interval",
            "5s",
        )


class TestBoundVariables:
    """Test user-bound variable substitution."""

    def test_scalar_substitution_and_ledger(self, substitutor):
        variables = [VariableBinding(name="region", value="us-east")]
        query, ledger = substitutor.substitute_time_and_bound_variables(
            "SELECT * FROM t WHERE r=$region", START, START + HOUR, "sql", variables
        )
        assert query == "SELECT * FROM t WHERE r=us-east"
        assert len(ledger) == 1
        assert ledger[0].type == "variable"
        assert ledger[0].name == "region"
        assert ledger[0].value == "us-east"

    def test_every_occurrence_replaced(self, substitutor):
        variables = [VariableBinding(name="ns", value="prod")]
        query, _ = substitutor.substitute_time_and_bound_variables(
            "$ns-$ns", START, START + HOUR, "sql", variables
        )
        assert query == "prod-prod"

    def test_unreferenced_variable_not_recorded(self, substitutor):
        variables = [VariableBinding(name="other", value="x")]
        _, ledger = substitutor.substitute_time_and_bound_variables(
            "SELECT 1", START, START + HOUR, "sql", variables
        )
        assert ledger == []

    def test_multi_value_joined(self, substitutor):
        variables = [VariableBinding(name="hosts", value=["a", "b"])]
        query, _ = substitutor.substitute_time_and_bound_variables(
            "host IN ($hosts)", START, START + HOUR, "sql", variables
        )
        assert query == "host IN (a,b)"

    def test_stringify_value(self):
        assert stringify_value(None) == ""
        assert stringify_value(3.0) == "3"
        assert stringify_value(["a", 1]) == "a,1"


class TestAdHocFilters:
    """Test ad-hoc filter injection and its ledger."""

    def test_incomplete_filters_dropped(self):
        variables = [_ad_hoc(("env", "=", "prod"), ("host", "=", ""))]
        assert [f.name for f in collect_ad_hoc_filters(variables)] == ["env"]

    def test_promql_filters_and_ledger(self, substitutor):
        variables = [_ad_hoc(("env", "=", "prod"), ("job", "!=", "batch"))]
        query, ledger = substitutor.apply_ad_hoc_filters("up", "promql", variables)
        assert query == 'up{env="prod",job!="batch"}'
        assert [(e.type, e.name, e.operator, e.value) for e in ledger] == [
            ("dynamicVariable", "env", "=", "prod"),
            ("dynamicVariable", "job", "!=", "batch"),
        ]

    def test_sql_filters(self, substitutor):
        variables = [_ad_hoc(("env", "=", "prod"))]
        query, ledger = substitutor.apply_ad_hoc_filters(
            "SELECT * FROM logs", "sql", variables
        )
        assert query == "SELECT * FROM logs WHERE env = 'prod'"
        assert len(ledger) == 1

    def test_other_query_types_untouched(self, substitutor):
        variables = [_ad_hoc(("env", "=", "prod"))]
        query, ledger = substitutor.apply_ad_hoc_filters("x", "vrl", variables)
        assert query == "x"
        assert ledger == []


class TestBuildQuery:
    """Test the full pipeline."""

    def test_metadata(self, substitutor):
        variables = [
            VariableBinding(name="ns", value="prod"),
            _ad_hoc(("env", "=", "dev")),
        ]
        meta = substitutor.build_query(
            'rate(x{ns="$ns"}[$__rate_interval])',
            START,
            START + HOUR,
            "promql",
            variables,
        )
        assert meta.original_query == 'rate(x{ns="$ns"}[$__rate_interval])'
        assert meta.query == 'rate(x{ns="prod",env="dev"}[1m])'
        assert meta.start_time == START
        assert meta.end_time == START + HOUR
        assert meta.query_type == "promql"
        assert [e.type for e in meta.variables] == [
            "fixed",
            "variable",
            "dynamicVariable",
        ]

    @pytest.mark.parametrize(
        "query_type,query",
        [
            ("promql", "sum(rate(x{job=\"$job\"}[$__interval]))"),
            ("sql", "SELECT * FROM t WHERE job = '$job' LIMIT 5"),
        ],
    )
    def test_pipeline_is_idempotent(self, substitutor, query_type, query):
        variables = [
            VariableBinding(name="job", value="api"),
            _ad_hoc(("env", "=", "prod")),
        ]
        once = substitutor.build_query(query, START, START + HOUR, query_type, variables)
        twice = substitutor.build_query(
            once.query, START, START + HOUR, query_type, variables
        )
        assert twice.query == once.query
