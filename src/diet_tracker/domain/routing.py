"""Routing policy deciding how each intercepted request is served."""

from collections.abc import Callable, Sequence
from enum import StrEnum

from diet_tracker.domain.http import ProxyRequest, origin_of

_WEB_SCHEMES = {"http", "https"}


class Strategy(StrEnum):
    """Fetch strategy chosen for a request."""

    BYPASS = "bypass"
    NETWORK_ONLY = "network-only"
    NETWORK_FIRST = "network-first"
    CACHE_FIRST = "cache-first"


_Rule = Callable[[ProxyRequest, str, Sequence[str]], Strategy | None]


def _non_get(
    request: ProxyRequest, _origin: str, _patterns: Sequence[str]
) -> Strategy | None:
    if request.method.upper() != "GET":
        return Strategy.BYPASS
    return None


def _tabular_data(
    request: ProxyRequest, _origin: str, patterns: Sequence[str]
) -> Strategy | None:
    # Substring anywhere in the URL, not only the suffix.
    if any(pattern in request.url for pattern in patterns):
        return Strategy.NETWORK_ONLY
    return None


def _foreign(
    request: ProxyRequest, origin: str, _patterns: Sequence[str]
) -> Strategy | None:
    if request.scheme not in _WEB_SCHEMES or request.origin != origin:
        return Strategy.BYPASS
    return None


def _navigation(
    request: ProxyRequest, _origin: str, _patterns: Sequence[str]
) -> Strategy | None:
    if request.navigate:
        return Strategy.NETWORK_FIRST
    return None


POLICY: tuple[_Rule, ...] = (_non_get, _tabular_data, _foreign, _navigation)


def choose_strategy(
    request: ProxyRequest,
    *,
    worker_origin: str,
    bypass_patterns: Sequence[str],
) -> Strategy:
    """Evaluate the ordered policy and return the first matching strategy.

    Requests no rule claims are static assets served cache-first.
    """
    origin = origin_of(worker_origin)
    for rule in POLICY:
        strategy = rule(request, origin, bypass_patterns)
        if strategy is not None:
            return strategy
    return Strategy.CACHE_FIRST


def is_navigation(method: str, headers: dict[str, str]) -> bool:
    """Infer navigation intent from Fetch metadata or the Accept header."""
    mode = headers.get("sec-fetch-mode")
    if mode is not None:
        return mode.lower() == "navigate"
    accept = headers.get("accept", "")
    return method.upper() == "GET" and "text/html" in accept.lower()
