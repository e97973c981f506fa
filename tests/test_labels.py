import pytest

from promkit.labels import (
    InconsistentCardinalityError,
    check_label_name,
    make_inconsistent_cardinality_error,
    make_label_pairs,
    validate_label_values,
    validate_values_in_labels,
)
from promkit.model import Desc, LabelPair


@pytest.mark.parametrize("name", ["code", "_x", "Method_2", "a"])
def test_valid_label_names(name):
    assert check_label_name(name)


@pytest.mark.parametrize("name", ["", "2abc", "with-dash", "__reserved", "sp ace", "é"])
def test_invalid_label_names(name):
    assert not check_label_name(name)


def test_cardinality_error_message():
    err = make_inconsistent_cardinality_error("m", ["a", "b"], ["x"])
    assert isinstance(err, InconsistentCardinalityError)
    message = str(err)
    assert message.startswith("inconsistent label cardinality")
    assert '"m"' in message
    assert '["a" "b"]' in message
    assert '["x"]' in message


def test_validate_label_values_count():
    validate_label_values(["a", "b"], 2)
    with pytest.raises(InconsistentCardinalityError):
        validate_label_values(["a"], 2)


def test_validate_label_values_invalid_utf8():
    with pytest.raises(ValueError, match="not valid UTF-8"):
        validate_label_values(["ok", "\ud800"], 2)


def test_validate_values_in_labels_count():
    with pytest.raises(InconsistentCardinalityError):
        validate_values_in_labels({"a": "1"}, 2)


def test_validate_values_in_labels_invalid_utf8():
    with pytest.raises(ValueError, match="label bad"):
        validate_values_in_labels({"bad": "\udfff"}, 1)


def test_make_label_pairs_merges_and_sorts():
    desc = Desc("m", "h", ["zone", "code"], {"app": "web"})
    pairs = make_label_pairs(desc, ["eu", "200"])
    assert pairs == (
        LabelPair("app", "web"),
        LabelPair("code", "200"),
        LabelPair("zone", "eu"),
    )


def test_make_label_pairs_without_variable_labels():
    desc = Desc("m", "h", (), {"b": "2", "a": "1"})
    assert make_label_pairs(desc, []) == desc.const_label_pairs


def test_make_label_pairs_wrong_count():
    desc = Desc("m", "h", ["a", "b"])
    with pytest.raises(InconsistentCardinalityError):
        make_label_pairs(desc, ["only"])