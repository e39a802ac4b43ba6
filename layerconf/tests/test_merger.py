"""Tests for the override merge policy."""

import pytest

from layerconf.merger import MergeError, MergePolicy, MergeStrategy
from layerconf.models.schemas import Override


def overrides(*pairs):
    return [Override(source, value) for source, value in pairs]


class TestMergePolicy:
    """Test cases for MergePolicy class."""

    def test_first_wins_by_default(self):
        policy = MergePolicy()

        result = policy.merge(
            "key", overrides(("a", None), ("b", "2"), ("c", "3"))
        )

        assert result == Override("b", "2")

    def test_first_wins_skips_missing_overrides(self):
        policy = MergePolicy()

        result = policy.merge("key", [None, Override("b", ""), Override("c", "3")])

        assert result == Override("b", "")

    def test_first_wins_is_lazy(self):
        policy = MergePolicy()
        consumed = []

        def generate():
            for override in overrides(("a", "1"), ("b", "2")):
                consumed.append(override.source)
                yield override

        assert policy.merge("key", generate()).source == "a"
        assert consumed == ["a"]

    def test_nothing_present(self):
        policy = MergePolicy(default_strategy=MergeStrategy.LAST_WINS)

        assert policy.merge("key", overrides(("a", None))) is None
        assert policy.merge("key", []) is None

    def test_last_wins(self):
        policy = MergePolicy(strategies={"*": MergeStrategy.LAST_WINS})

        result = policy.merge("key", overrides(("a", "1"), ("b", "2"), ("c", None)))

        assert result == Override("b", "2")

    def test_concatenate(self):
        policy = MergePolicy(separator=":")
        policy.set_strategy("path.*", MergeStrategy.CONCATENATE)

        result = policy.merge(
            "path.plugins", overrides(("a", "x"), ("b", None), ("c", "y"))
        )

        assert result == Override("a", "x:y")

    def test_longest_pattern_wins(self):
        policy = MergePolicy(
            strategies={
                "tsd.*": MergeStrategy.LAST_WINS,
                "tsd.plugins.*": MergeStrategy.CONCATENATE,
            }
        )

        assert policy.strategy_for("tsd.plugins.load") == MergeStrategy.CONCATENATE
        assert policy.strategy_for("tsd.port") == MergeStrategy.LAST_WINS
        assert policy.strategy_for("other") == MergeStrategy.FIRST_WINS

    def test_patterns_are_case_sensitive(self):
        policy = MergePolicy(strategies={"TSD.*": MergeStrategy.LAST_WINS})

        assert policy.strategy_for("tsd.port") == MergeStrategy.FIRST_WINS

    def test_remove_strategy(self):
        policy = MergePolicy(strategies={"a*": MergeStrategy.LAST_WINS})

        assert policy.remove_strategy("a*") is True
        assert policy.remove_strategy("a*") is False
        assert policy.strategy_for("abc") == MergeStrategy.FIRST_WINS

    def test_custom_handler(self):
        def highest_number(key, candidates):
            return max(candidates, key=lambda o: int(o.value))

        policy = MergePolicy(strategies={"limits.*": highest_number})

        result = policy.merge("limits.max", overrides(("a", "3"), ("b", "10")))

        assert result == Override("b", "10")

    def test_custom_handler_error_falls_back_to_first(self):
        def broken(key, candidates):
            raise RuntimeError("handler bug")

        policy = MergePolicy(strategies={"*": broken})

        result = policy.merge("key", overrides(("a", "1"), ("b", "2")))

        assert result == Override("a", "1")

    def test_custom_handler_bad_return_falls_back_to_first(self):
        policy = MergePolicy(strategies={"*": lambda key, candidates: "oops"})

        result = policy.merge("key", overrides(("a", "1"), ("b", "2")))

        assert result == Override("a", "1")

    def test_invalid_strategy(self):
        policy = MergePolicy()

        with pytest.raises(MergeError):
            policy.set_strategy("key", "first_wins")
        with pytest.raises(MergeError):
            policy.set_strategy("", MergeStrategy.LAST_WINS)
