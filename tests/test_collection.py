"""
Collection Tests — list behaviour, re-indexing, plain-data conversion.
"""

import json
from types import SimpleNamespace

from palmrecord.models import Collection, to_plain


class TestCollectionBasics:

    def test_mapping_input_is_reindexed(self):
        c = Collection({3: "a", 7: "b", 11: "c"})
        assert list(c) == ["a", "b", "c"]
        assert c[0] == "a"
        assert c[2] == "c"

    def test_delete_shifts_down(self):
        c = Collection(["a", "b", "c"])
        del c[0]
        assert c[0] == "b"
        assert len(c) == 2
        assert c == ["b", "c"]

    def test_mutation(self):
        c = Collection([1, 2])
        c.append(3)
        c[0] = 10
        c.insert(1, 5)
        assert c == [10, 5, 2, 3]
        assert 5 in c
        assert c.count() == 4
        assert c.count(5) == 1

    def test_slice_returns_collection(self):
        c = Collection(range(5))
        part = c[1:3]
        assert isinstance(part, Collection)
        assert part == [1, 2]

    def test_first_last_empty(self):
        assert Collection().first() is None
        assert Collection().last() is None
        assert Collection().is_empty()
        assert not Collection()
        c = Collection(["x", "y"])
        assert c.first() == "x"
        assert c.last() == "y"

    def test_map_filter(self):
        c = Collection([1, 2, 3, 4])
        assert c.map(lambda n: n * 10) == [10, 20, 30, 40]
        assert isinstance(c.filter(lambda n: n % 2 == 0), Collection)
        assert c.filter(lambda n: n % 2 == 0) == [2, 4]

    def test_pluck(self):
        c = Collection([{"name": "a"}, SimpleNamespace(name="b"), {"other": 1}])
        assert c.pluck("name") == ["a", "b", None]

    def test_equality(self):
        assert Collection([1, 2]) == Collection([1, 2])
        assert Collection([1, 2]) != [2, 1]
        assert Collection([1]) != "1"


class TestPlainConversion:

    def test_nested_structures_are_unwrapped(self):
        inner = Collection([SimpleNamespace(id=2, tags=Collection(["x"]))])
        c = Collection([{"id": 1, "children": inner}])

        assert c.to_list() == [{"id": 1, "children": [{"id": 2, "tags": ["x"]}]}]

    def test_to_plain_uses_to_dict(self):
        class Row:
            def to_dict(self):
                return {"k": "v"}

        assert to_plain([Row(), (1, 2)]) == [{"k": "v"}, [1, 2]]
        assert to_plain(5) == 5

    def test_to_json(self):
        c = Collection([{"a": 1}, {"b": Collection([2])}])
        assert json.loads(c.to_json()) == [{"a": 1}, {"b": [2]}]
