"""Label validation and label-pair construction."""

from __future__ import annotations

import json
import re
from typing import Iterable, Mapping

from promkit.model import Desc, LabelPair

Labels = dict[str, str]

RESERVED_LABEL_PREFIX = "__"

_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_CARDINALITY = "inconsistent label cardinality"


class InconsistentCardinalityError(ValueError):
    """The number of label values does not match the number of labels."""


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _quote_list(items: Iterable[str]) -> str:
    return "[" + " ".join(_quote(item) for item in items) + "]"


def _is_valid_utf8(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def make_inconsistent_cardinality_error(
    fq_name: str, labels: Iterable[str], label_values: Iterable[str]
) -> InconsistentCardinalityError:
    """Build the error reported when label values do not fit the labels."""
    names = list(labels)
    values = list(label_values)
    return InconsistentCardinalityError(
        f"{_CARDINALITY}: {_quote(fq_name)} has {len(names)} variable labels "
        f"named {_quote_list(names)} but {len(values)} values "
        f"{_quote_list(values)} were provided"
    )


def validate_values_in_labels(labels: Mapping[str, str], expected: int) -> None:
    """Check a label map for its size and for valid UTF-8 values."""
    if len(labels) != expected:
        raise InconsistentCardinalityError(
            f"{_CARDINALITY}: expected {expected} label values "
            f"but got {len(labels)} in {dict(labels)!r}"
        )
    for name, value in labels.items():
        if not _is_valid_utf8(value):
            raise ValueError(f"label {name}: value {_quote(value)} is not valid UTF-8")


def validate_label_values(values: Iterable[str], expected: int) -> None:
    """Check a sequence of label values for its length and valid UTF-8."""
    values = list(values)
    if len(values) != expected:
        raise InconsistentCardinalityError(
            f"{_CARDINALITY}: expected {expected} label values "
            f"but got {len(values)} in {values!r}"
        )
    for value in values:
        if not _is_valid_utf8(value):
            raise ValueError(f"label value {_quote(value)} is not valid UTF-8")


def check_label_name(name: str) -> bool:
    """Return whether ``name`` is a legal, non-reserved label name."""
    return bool(_LABEL_NAME.fullmatch(name)) and not name.startswith(RESERVED_LABEL_PREFIX)


def make_label_pairs(desc: Desc, label_values: Iterable[str]) -> tuple[LabelPair, ...]:
    """Combine variable label values with the constant labels, sorted by name."""
    values = list(label_values)
    if not desc.variable_labels:
        if values:
            raise make_inconsistent_cardinality_error(desc.fq_name, (), values)
        return desc.const_label_pairs
    if len(values) != len(desc.variable_labels):
        raise make_inconsistent_cardinality_error(desc.fq_name, desc.variable_labels, values)
    pairs = [LabelPair(name, value) for name, value in zip(desc.variable_labels, values)]
    pairs.extend(desc.const_label_pairs)
    return tuple(sorted(pairs, key=lambda pair: pair.name))