"""
Route authorization matcher.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern

from paasbaan.core.config import RouteRule

PARAM_SEGMENT = "[^/]+"


def compile_path(path: str) -> Pattern[str]:
    """
    Compile a route pattern into an anchored regular expression.

    ``:name`` segments match exactly one non-empty path segment; every other
    character is literal.
    """
    parts = [
        PARAM_SEGMENT if segment.startswith(":") and len(segment) > 1 else re.escape(segment)
        for segment in path.split("/")
    ]
    return re.compile("/".join(parts))


@dataclass(frozen=True)
class CompiledRoute:
    rule: RouteRule
    pattern: Pattern[str]

    def matches(self, path: str, method: str) -> bool:
        return self.rule.method == method and self.pattern.fullmatch(path) is not None


class RouteMatcher:
    """
    Maps a (path, method) pair to the first declared route that matches.

    Declaration order decides between overlapping patterns.
    """

    def __init__(self, rules: Iterable[RouteRule]):
        self._routes: List[CompiledRoute] = [
            CompiledRoute(rule=rule, pattern=compile_path(rule.path)) for rule in rules
        ]

    def __len__(self) -> int:
        return len(self._routes)

    def match(self, path: str, method: str) -> Optional[RouteRule]:
        """
        Find the route protecting a request.

        Args:
            path: Request path without query string
            method: HTTP method, any case

        Returns:
            The first matching rule, or None if the route is not protected
        """
        method = method.upper()
        for route in self._routes:
            if route.matches(path, method):
                return route.rule
        return None
