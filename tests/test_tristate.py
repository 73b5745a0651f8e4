"""
Unit tests for three-valued logic.
"""

import itertools

import pytest

from feature_gating.constraints.tristate import Tristate

T, F, U = Tristate.TRUE, Tristate.FALSE, Tristate.UNKNOWN


class TestConversions:
    """Test conversions to and from optional booleans."""

    @pytest.mark.parametrize("value,expected", [(True, T), (False, F), (None, U)])
    def test_from_optional(self, value, expected):
        """Test None maps to UNKNOWN."""
        assert Tristate.from_optional(value) is expected
        assert expected.to_optional() is value

    def test_is_known(self):
        """Test only UNKNOWN is not known."""
        assert T.is_known
        assert F.is_known
        assert not U.is_known


class TestOperators:
    """Test Kleene operators."""

    @pytest.mark.parametrize("left,right,expected", [
        (T, T, T), (T, F, F), (T, U, U),
        (F, F, F), (F, U, F), (U, U, U),
    ])
    def test_and(self, left, right, expected):
        """Test FALSE dominates conjunction and UNKNOWN beats TRUE."""
        assert left & right is expected
        assert right & left is expected

    @pytest.mark.parametrize("left,right,expected", [
        (T, T, T), (T, F, T), (T, U, T),
        (F, F, F), (F, U, U), (U, U, U),
    ])
    def test_or(self, left, right, expected):
        """Test TRUE dominates disjunction and UNKNOWN beats FALSE."""
        assert left | right is expected
        assert right | left is expected

    def test_invert(self):
        """Test negation leaves UNKNOWN alone."""
        assert ~T is F
        assert ~F is T
        assert ~U is U

    def test_and_rejects_plain_bool(self):
        """Test mixing with bool is a type error."""
        with pytest.raises(TypeError):
            T & True


class TestFolds:
    """Test all_of / any_of."""

    def test_empty(self):
        """Test identities of the folds."""
        assert Tristate.all_of([]) is T
        assert Tristate.any_of([]) is F

    def test_all_of_false_wins_over_unknown(self):
        """Test a single FALSE makes the conjunction FALSE."""
        assert Tristate.all_of([U, T, F]) is F
        assert Tristate.all_of([T, U]) is U

    def test_any_of_unknown_beats_false(self):
        """Test no TRUE but one UNKNOWN gives UNKNOWN."""
        assert Tristate.any_of([F, U, F]) is U
        assert Tristate.any_of([F, F]) is F

    def test_folds_are_order_independent(self):
        """Test every permutation yields the same answer."""
        values = [F, U, T, U]
        for permutation in itertools.permutations(values):
            assert Tristate.any_of(permutation) is T
            assert Tristate.all_of(permutation) is F

        for permutation in itertools.permutations([F, U, F]):
            assert Tristate.any_of(permutation) is U

    def test_all_of_short_circuits(self):
        """Test values after the first FALSE are never pulled."""
        pulled = []

        def values():
            for value in (T, F, U):
                pulled.append(value)
                yield value

        assert Tristate.all_of(values()) is F
        assert pulled == [T, F]
