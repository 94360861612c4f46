"""Tests for input normalisation."""

import pytest

from taskline.exceptions import InvalidInputError
from taskline.normalize import normalize


class TestNormalize:
    def test_casefolds_trims_and_collapses(self) -> None:
        assert normalize("  Submit   REPORT\ttomorrow \n") == "submit report tomorrow"

    def test_is_idempotent(self) -> None:
        once = normalize("Buy  Milk #Groceries")
        assert normalize(once) == once

    def test_preserves_punctuation(self) -> None:
        assert normalize("Call Bob!! #work") == "call bob!! #work"

    @pytest.mark.parametrize("value", ["", "   ", "\n\t"])
    def test_blank_input_rejected(self, value: str) -> None:
        with pytest.raises(InvalidInputError):
            normalize(value)

    @pytest.mark.parametrize("value", [None, 42, b"bytes", ["list"]])
    def test_non_text_rejected(self, value: object) -> None:
        with pytest.raises(InvalidInputError):
            normalize(value)

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            normalize(None)
