"""OAuth scope string parsing and canonicalization.

Scopes are case-sensitive identifiers. The canonical form of a scope set is
the ``offline_access`` sentinel first, followed by every other scope sorted
lexicographically, with no duplicates.
"""

import re
from collections.abc import Iterable


OFFLINE_ACCESS_SCOPE = "offline_access"
READONLY_SUFFIX = ":readonly"

_SCOPE_SEPARATORS = re.compile(r"[, \t\n]+")


def normalize_scopes(scopes: Iterable[str]) -> list[str]:
    """Trim and de-duplicate scopes, preserving first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for scope in scopes:
        scope = scope.strip()
        if not scope or scope in seen:
            continue
        seen.add(scope)
        out.append(scope)
    return out


def parse_scope_list(raw: str) -> list[str]:
    """Split a comma/space/tab/newline separated scope string."""
    raw = raw.strip()
    if not raw:
        return []
    return normalize_scopes(_SCOPE_SEPARATORS.split(raw))


def canonicalize_scopes(scopes: Iterable[str]) -> list[str]:
    """Return the canonical scope set.

    The sentinel scope is always present exactly once and first; the rest
    are sorted. Applying this twice yields the same result as applying it
    once.
    """
    rest = sorted(s for s in normalize_scopes(scopes) if s != OFFLINE_ACCESS_SCOPE)
    return [OFFLINE_ACCESS_SCOPE, *rest]


def ensure_offline_access(scopes: Iterable[str]) -> list[str]:
    return canonicalize_scopes(scopes)


def join_scopes(scopes: Iterable[str]) -> str:
    """Space-join the canonical form of ``scopes``."""
    return " ".join(canonicalize_scopes(scopes))


def canonical_scope_string(raw: str) -> str:
    """Canonicalize a provider-returned scope string, or ``""`` if empty."""
    scopes = parse_scope_list(raw)
    if not scopes:
        return ""
    return join_scopes(scopes)


def requested_scopes(
    scopes: Iterable[str], granted_scope: str, incremental: bool
) -> list[str]:
    """Scopes to request at login.

    In incremental mode only scopes not yet granted are requested (the
    provider merges them with the existing grant); the sentinel is always
    kept so a refresh token is issued.
    """
    scopes = normalize_scopes(scopes)
    if not incremental or not granted_scope.strip():
        return canonicalize_scopes(scopes)
    granted = set(parse_scope_list(granted_scope))
    delta = [s for s in scopes if s == OFFLINE_ACCESS_SCOPE or s not in granted]
    return canonicalize_scopes(delta)


def scope_satisfied(required: str, granted: set[str]) -> bool:
    """Whether ``required`` is covered by the ``granted`` scope set.

    A full scope ``X`` satisfies ``X:readonly``; the reverse does not hold.
    """
    if required in granted:
        return True
    if required.endswith(READONLY_SUFFIX):
        return required.removesuffix(READONLY_SUFFIX) in granted
    return False


def missing_scopes(required: Iterable[str], granted_scope: str) -> list[str]:
    """Required scopes not covered by a granted-scope string, in input order."""
    granted = set(parse_scope_list(granted_scope))
    return [s for s in normalize_scopes(required) if not scope_satisfied(s, granted)]


def select_preferred_scopes(
    scopes: Iterable[str], required_full: Iterable[str] = ()
) -> list[str]:
    """Drop a full scope when its read-only variant is also listed.

    Provider errors often list both variants of a permission; the read-only
    one is enough unless the caller explicitly needs full access.
    """
    scopes = normalize_scopes(scopes)
    keep_full = set(required_full)
    present = set(scopes)
    out = []
    for scope in scopes:
        if scope + READONLY_SUFFIX in present and scope not in keep_full:
            continue
        out.append(scope)
    return out


def normalize_services(services: Iterable[str]) -> list[str]:
    """Lowercase, trim and de-duplicate service names."""
    seen: set[str] = set()
    out: list[str] = []
    for service in services:
        service = service.strip().lower()
        if not service or service in seen:
            continue
        seen.add(service)
        out.append(service)
    return out


def parse_services_list(raw: Iterable[str]) -> list[str]:
    """Flatten repeated/comma-separated ``--services`` values."""
    parts: list[str] = []
    for entry in raw:
        parts.extend(_SCOPE_SEPARATORS.split(entry.strip()))
    return normalize_services(parts)
