"""
Tests for indicator parameter handling - deep merge, aliases and name suffixes.
"""

import pytest

from indicators.params import merge_params, normalize_aliases, resolve_params, parse_indicator_name


class TestMergeParams:
    """Tests for merge_params function."""

    def test_caller_keys_win(self):
        assert merge_params({'period': 14, 'risk_free': 0.02}, {'period': 30}) == {
            'period': 30, 'risk_free': 0.02
        }

    def test_nested_maps_merge(self):
        """Test that nested dictionaries merge key by key."""
        defaults = {'bands': {'upper': 2.0, 'lower': 2.0}, 'period': 20}
        merged = merge_params(defaults, {'bands': {'upper': 3.0}})

        assert merged == {'bands': {'upper': 3.0, 'lower': 2.0}, 'period': 20}

    def test_lists_are_replaced(self):
        assert merge_params({'windows': [20, 50, 200]}, {'windows': [10]}) == {'windows': [10]}

    def test_inputs_not_mutated(self):
        defaults = {'bands': {'upper': 2.0}}
        overrides = {'bands': {'upper': 3.0}}

        merge_params(defaults, overrides)

        assert defaults == {'bands': {'upper': 2.0}}
        assert overrides == {'bands': {'upper': 3.0}}

    def test_empty_inputs(self):
        assert merge_params({}, None) == {}
        assert merge_params({'period': 14}, {}) == {'period': 14}


class TestNormalizeAliases:
    """Tests for window/period cross-population."""

    def test_window_populates_period(self):
        assert normalize_aliases({'window': 50}) == {'window': 50, 'period': 50}

    def test_period_populates_window(self):
        assert normalize_aliases({'period': 14}) == {'period': 14, 'window': 14}

    def test_explicit_window_collapses_list(self):
        """Test that an explicit window overrides a default windows list."""
        params = {'windows': [20, 50, 200], 'window': 50}

        result = normalize_aliases(params, explicit={'window': 50})

        assert result['windows'] == [50]
        assert result['period'] == 50

    def test_explicit_list_is_kept(self):
        result = normalize_aliases({'windows': [5, 10], 'window': 5}, explicit={'windows': [5, 10], 'window': 5})
        assert result['windows'] == [5, 10]

    def test_default_window_does_not_collapse(self):
        result = normalize_aliases({'windows': [20, 50], 'window': 20}, explicit={})
        assert result['windows'] == [20, 50]


class TestResolveParams:
    """Tests for the merge + normalize combination."""

    def test_suffix_style_override(self):
        """Test 'sma_50' style overrides on SMA defaults."""
        resolved = resolve_params({'windows': [20, 50, 200]}, {'window': 50, 'period': 50})

        assert resolved == {'windows': [50], 'window': 50, 'period': 50}

    def test_period_override_on_period_module(self):
        resolved = resolve_params({'period': 14}, {'period': 21})
        assert resolved['period'] == 21
        assert resolved['window'] == 21


class TestParseIndicatorName:
    """Tests for numeric-suffix parsing."""

    @pytest.mark.parametrize("name,expected", [
        ('sma_50', ('sma', {'window': 50, 'period': 50})),
        ('EMA_26', ('ema', {'window': 26, 'period': 26})),
        ('rolling_beta_60', ('rolling_beta', {'window': 60, 'period': 60})),
        ('macd', ('macd', {})),
        ('rolling_corr', ('rolling_corr', {})),
        ('  rsi  ', ('rsi', {})),
    ])
    def test_parse(self, name, expected):
        assert parse_indicator_name(name) == expected

    def test_empty_name(self):
        assert parse_indicator_name('') == ('', {})
        assert parse_indicator_name(None) == ('', {})
