"""Tests for slotguard.compare.levenshtein."""

from slotguard.compare.levenshtein import edit_script, levenshtein


def _match(a, b):
    return None if a == b else f"{a}->{b}"


def _summary(ops):
    return [(op.kind, op.original, op.updated) for op in ops]


class TestLevenshtein:
    def test_identical_sequences(self):
        assert levenshtein("abc", "abc", _match) == []

    def test_change_is_one_replace(self):
        ops = levenshtein("abc", "abd", _match)
        assert _summary(ops) == [("replace", "c", "d")]
        assert ops[0].change == "c->d"
        assert (ops[0].original_index, ops[0].updated_index) == (2, 2)

    def test_insert_in_middle(self):
        ops = levenshtein("ac", "abc", _match)
        assert _summary(ops) == [("insert", None, "b")]
        assert ops[0].updated_index == 1

    def test_delete(self):
        assert _summary(levenshtein("abc", "ac", _match)) == [("delete", "b", None)]

    def test_from_empty(self):
        assert [op.kind for op in levenshtein("", "ab", _match)] == ["insert", "insert"]

    def test_expensive_change_splits_into_delete_and_insert(self):
        ops = levenshtein("a", "b", _match, cost=lambda change: 5)
        assert sorted(op.kind for op in ops) == ["delete", "insert"]

    def test_trailing_elements_pair_first(self):
        (op,) = levenshtein("aa", "a", _match)
        assert (op.kind, op.original_index) == ("delete", 0)


class TestEditScript:
    def test_includes_equal_pairs(self):
        ops = edit_script("ab", "xb", _match)
        assert [op.kind for op in ops] == ["replace", "equal"]
        assert ops[1].original_index == ops[1].updated_index == 1

    def test_match_called_once_per_pair(self):
        calls = []

        def counting(a, b):
            calls.append((a, b))
            return _match(a, b)

        edit_script("abc", "abd", counting)
        assert len(calls) == len(set(calls))
