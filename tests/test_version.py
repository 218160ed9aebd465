"""
Tests for Version parsing and ordering.
"""

import pytest

from cipherise.common.version import Version


def test_lexicographic_ordering() -> None:
    assert Version([1, 9, 9]) < Version([2, 0, 0])
    assert Version([2, 0, 1]) > Version([2, 0, 0])
    assert Version([6, 1, 0]) == Version.from_string("6.1.0")


def test_exactly_one_relation_holds() -> None:
    versions = [Version([a, b, c]) for a in (0, 1) for b in (0, 2) for c in (0, 3)]
    for a in versions:
        for b in versions:
            relations = [a < b, a == b, a > b]
            assert relations.count(True) == 1
            assert a.compare(b) == (-1 if a < b else 1 if a > b else 0)


def test_requires_three_digits() -> None:
    with pytest.raises(ValueError):
        Version([1, 2])
    with pytest.raises(ValueError):
        Version.from_string("6.0")
    with pytest.raises(ValueError):
        Version([1, -1, 0])


def test_string_form() -> None:
    v = Version.from_string(" 6.3.1 ")
    assert str(v) == "6.3.1"
    assert v.major == 6
    assert v.digits == (6, 3, 1)
