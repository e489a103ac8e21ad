import pytest

from wsengine.types.multidict import MultiDict


class Caseless(MultiDict):
    @staticmethod
    def _kconv(key):
        return key.lower()

    @staticmethod
    def _reduce_values(values):
        return "|".join(values)


def accept_fields():
    return Caseless([("Accept", "a"), ("Host", "h"), ("accept", "b")])


def test_plain_multidict():
    md = MultiDict([("a", 1), ("A", 2), ("a", 3)])
    assert md["a"] == 1
    assert md["A"] == 2
    assert len(md) == 2
    assert list(md) == ["a", "A"]
    assert md.get_all("a") == [1, 3]
    assert dict(md) == {"a": 1, "A": 2}


def test_empty():
    md = Caseless()
    assert md.fields == ()
    assert len(md) == 0
    assert not md
    assert md.get_all("x") == []
    with pytest.raises(KeyError):
        md["x"]
    with pytest.raises(KeyError):
        del md["x"]


def test_lookup():
    md = accept_fields()
    assert md["ACCEPT"] == "a|b"
    assert md.get("host") == "h"
    assert md.get("missing") is None
    assert "hOsT" in md
    assert len(md) == 2
    assert list(md) == ["Accept", "Host"]
    assert md.get_all("accept") == ["a", "b"]


def test_setitem_replaces():
    md = accept_fields()
    md["ACCEPT"] = "c"
    assert md.fields == (("Accept", "c"), ("Host", "h"))
    md["Origin"] = "o"
    assert md.fields[-1] == ("Origin", "o")


def test_set_all():
    md = accept_fields()
    md.set_all("accept", ["x", "y", "z"])
    # existing spellings and positions are kept
    assert md.fields == (("Accept", "x"), ("Host", "h"), ("accept", "y"), ("accept", "z"))

    md.set_all("ACCEPT", ("only",))
    assert md.fields == (("Accept", "only"), ("Host", "h"))

    md.set_all("accept", [])
    assert md.fields == (("Host", "h"),)


def test_delitem():
    md = accept_fields()
    del md["accept"]
    assert md.fields == (("Host", "h"),)
    assert "Accept" not in md


def test_add():
    md = accept_fields()
    md.add("HOST", "h2")
    assert md.fields[-1] == ("HOST", "h2")
    assert md["host"] == "h|h2"
    assert len(md) == 2


def test_update():
    md = Caseless([("a", "1")])
    md.update({"A": "2", "b": "3"})
    assert md.fields == (("a", "2"), ("b", "3"))


def test_eq_and_repr():
    assert accept_fields() == accept_fields()
    assert Caseless([("a", "1")]) != Caseless([("A", "1")])
    assert Caseless() != {}
    assert repr(Caseless([("a", "1")])) == "Caseless[('a', '1')]"
