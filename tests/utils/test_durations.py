"""
Brief: Tests for wpsync.utils.durations.parse_duration.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from wpsync.utils.durations import parse_duration


@pytest.mark.parametrize(
    "text, seconds",
    [
        ("0", 0.0),
        ("30", 30.0),
        ("2.5", 2.5),
        ("250ms", 0.25),
        ("30s", 30.0),
        ("3m", 180.0),
        ("1h30m", 5400.0),
        ("1m30s", 90.0),
        ("1.5h", 5400.0),
    ],
)
def test_parse_duration(text, seconds):
    """
    Brief: Go-style duration strings and bare seconds parse to seconds.

    Inputs:
      - text: duration string
      - seconds: expected value

    Outputs:
      - None
    """
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "-1s", "abc", "3x", "s", "1m fast", "inf"])
def test_parse_duration_rejects_garbage(text):
    """
    Brief: Empty, negative, unknown-unit and non-finite inputs raise ValueError.

    Inputs:
      - text: invalid duration string

    Outputs:
      - None
    """
    with pytest.raises(ValueError):
        parse_duration(text)
