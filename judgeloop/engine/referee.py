"""
Scoring of a participant's output against the expected output.

The pipeline only depends on the Referee call signature and on the
referee being deterministic. referee() is the default line-based grader.
"""

from typing import List, Protocol


class Referee(Protocol):
    def __call__(self, actual_output: str, expected_output: str, max_points: int) -> int:
        ...


def _normalize(text: str) -> List[str]:
    """Split into lines, ignoring CRLF, trailing spaces and trailing blank lines"""
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return lines


def referee(actual_output: str, expected_output: str, max_points: int) -> int:
    """
    Award points proportional to the expected lines reproduced in place.

    Args:
        actual_output: Decoded stdout of the submission
        expected_output: Problem's expected output
        max_points: Points for a fully correct output

    Returns:
        Points in [0, max_points]
    """
    if max_points <= 0:
        return 0

    actual = _normalize(actual_output or "")
    expected = _normalize(expected_output or "")

    if not expected:
        return max_points if not actual else 0

    matching = sum(1 for index, line in enumerate(expected) if index < len(actual) and actual[index] == line)
    points = (max_points * matching) // len(expected)
    return max(0, min(points, max_points))
