"""
Hamcrest matchers for comparing decoded JSON in tests
"""

from typing import Any

from hamcrest.core.base_matcher import BaseMatcher
from hamcrest.core.description import Description


class JsonEqualToMatcher(BaseMatcher[Any]):
    """
    Custom matcher: two decoded JSON structures are the same, member by member.
    Unlike ==, True is not equal to 1 here, and the mismatch description names the first
    place where the structures differ.
    """
    def __init__(self, expected: Any):
        self._expected = expected


    def _matches(self, item: Any) -> bool:
        return self._first_difference(item, self._expected, '$') is None


    def _first_difference(self, a: Any, b: Any, path: str) -> str | None:
        if type(a) is not type(b):
            return path
        if isinstance(a, dict):
            if set(a) != set(b):
                return path
            for key, value in a.items():
                found = self._first_difference(value, b[key], f'{ path }.{ key }')
                if found:
                    return found
            return None
        if isinstance(a, list):
            if len(a) != len(b):
                return path
            for i, (aa, bb) in enumerate(zip(a, b)):
                found = self._first_difference(aa, bb, f'{ path }[{ i }]')
                if found:
                    return found
            return None
        return None if a == b else path


    def describe_to(self, description: Description) -> None:
        description.append_text(f'JSON equal to: { self._expected }')


    def describe_mismatch(self, item: Any, mismatch_description: Description) -> None:
        mismatch_description.append_text(f'differs at { self._first_difference(item, self._expected, "$") }')


def json_equal_to(expected: Any) -> JsonEqualToMatcher:
    return JsonEqualToMatcher(expected)
