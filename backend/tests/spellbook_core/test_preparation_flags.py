"""
Tests for the preparedSpellsByClass helpers
"""

import pytest

from spellbook.exceptions import InvariantViolationError
from spellbook.preparation import (
    class_keys, flatten_prepared, projection_matches, validate_prepared_by_class,
)


class TestValidatePreparedByClass:
    def test_accepts_matching_prefixes(self):
        data = {'wizard': ['wizard:a', 'wizard:b'], 'cleric': ['cleric:a']}
        assert validate_prepared_by_class(data) is data

    def test_rejects_foreign_prefix(self):
        with pytest.raises(InvariantViolationError):
            validate_prepared_by_class({'wizard': ['cleric:a']})

    def test_rejects_missing_prefix(self):
        with pytest.raises(InvariantViolationError):
            validate_prepared_by_class({'wizard': ['Compendium.dnd5e.spells.Item.a']})

    def test_rejects_non_mapping(self):
        with pytest.raises(InvariantViolationError):
            validate_prepared_by_class(['wizard:a'])

    def test_empty_class_lists_are_fine(self):
        assert validate_prepared_by_class({'wizard': [], 'cleric': None}) == {'wizard': [], 'cleric': None}


class TestFlatProjection:
    def test_flatten_keeps_duplicates_across_classes(self):
        data = {'wizard': ['wizard:x', 'wizard:y'], 'cleric': ['cleric:x']}
        assert sorted(flatten_prepared(data)) == ['x', 'x', 'y']

    def test_projection_is_a_bag_comparison(self):
        data = {'wizard': ['wizard:x'], 'cleric': ['cleric:x', 'cleric:z']}
        assert projection_matches(['z', 'x', 'x'], data)
        assert not projection_matches(['x', 'z'], data)

    def test_class_keys_dedupes_in_order(self):
        assert class_keys('druid', ['b', 'a', 'b']) == ['druid:b', 'druid:a']
