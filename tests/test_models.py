import pytest

from sitestructure.models import (
    MAX_METHOD_LENGTH,
    MAX_NAME_LENGTH,
    StructureNode,
    ValidationError,
    name_hash,
    validate_node_fields,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", 0),
        ("hello", 99162322),
        ("Aa", 2112),
        ("BB", 2112),
        ("polygenelubricants", -2147483648),
        ("\U0001F600", 1772899),
    ],
)
def test_name_hash_matches_string_hashcode(value: str, expected: int) -> None:
    assert name_hash(value) == expected


def test_name_hash_is_signed_32_bit() -> None:
    value = name_hash("http://example.test/" + "segment/" * 200)
    assert -(2**31) <= value < 2**31


def test_validate_node_fields_accepts_limits() -> None:
    validate_node_fields("n" * MAX_NAME_LENGTH, "http://x", "M" * MAX_METHOD_LENGTH)


def test_validate_node_fields_rejects_oversized_values() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_node_fields("n" * (MAX_NAME_LENGTH + 1), "http://x", "GET")
    assert "name" in excinfo.value.errors


def test_structure_node_to_dict_round_trips_fields() -> None:
    node = StructureNode(
        structure_id=5,
        session_id=1,
        parent_id=0,
        history_id=None,
        name="/",
        name_hash=name_hash("/"),
        url="http://a/",
        method="GET",
    )
    payload = node.to_dict()
    assert payload["structure_id"] == 5
    assert payload["history_id"] is None
    assert node.is_root_child
    assert StructureNode(**payload) == node
