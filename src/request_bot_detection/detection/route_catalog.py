"""
Route parameter whitelist catalog.

Resolves, for a request path, the set of query parameter names that
legitimate clients are expected to send. The catalog is built from a static
route manifest (route pattern -> fields declared by the route's validation
rules) plus a manual override table, memoized, and rebuilt on demand.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from ..config.config_loader import load_route_manifest
from ..config.constants import COMMON_PARAMETERS, ROUTE_PARAMETER_OVERRIDES
from ..utils.url_utils import normalize_route_path

logger = logging.getLogger(__name__)

# Route placeholder segment, e.g. {slug} or {id?}
_PLACEHOLDER_PATTERN = re.compile(r"\{[^}]+\}")


@dataclass(frozen=True)
class RouteDeclaration:
    """A registered route pattern and the input fields its validation declares."""

    path: str
    fields: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RouteDeclaration":
        """
        Create from a manifest entry.

        ``fields`` may be a list of names or a mapping of name -> rule (as
        validation rule tables are usually written).

        Raises:
            ValueError: If the entry has no usable path or fields
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Route entry must be a mapping, got {data!r}")

        path = data.get("path")
        if path is None or not isinstance(path, str):
            raise ValueError(f"Route entry has no path: {data!r}")

        fields = data.get("fields") or ()
        if isinstance(fields, Mapping):
            fields = tuple(fields.keys())
        elif isinstance(fields, (list, tuple)):
            fields = tuple(fields)
        else:
            raise ValueError(f"Route '{path}' fields must be a list or mapping")

        return cls(path=path, fields=fields)


def flatten_field_name(name: str) -> str:
    """
    Reduce a validation field name to its top-level query parameter.

    Examples:
        >>> flatten_field_name("items.*.name")
        'items'
        >>> flatten_field_name("email")
        'email'
    """
    return name.split(".", 1)[0]


def pattern_to_regex(pattern: str) -> re.Pattern:
    """
    Compile a route pattern into a full-match regex.

    Placeholder segments match any single non-empty path segment.

    Examples:
        >>> bool(pattern_to_regex("blog/{slug}").match("blog/hello-world"))
        True
        >>> bool(pattern_to_regex("blog/{slug}").match("blog/a/b"))
        False
    """
    parts = _PLACEHOLDER_PATTERN.split(pattern)
    regex = "[^/]+".join(re.escape(part) for part in parts)
    return re.compile(f"^{regex}$")


class RouteParameterCatalog:
    """
    Per-route whitelist of accepted query parameter names.

    One instance is meant to live for the whole process and be shared by the
    detection engine. The catalog is built lazily on first lookup; call
    ``clear_cache()`` (or ``rebuild()``) after the route table changes.

    Lookup order:
    1. Exact match on the normalized path
    2. First placeholder pattern matching the path, in build order
    3. The common baseline parameters
    """

    def __init__(
        self,
        routes: Iterable[Union[RouteDeclaration, Mapping[str, Any]]] = (),
        overrides: Optional[Mapping[str, Iterable[str]]] = None,
        common_parameters: Iterable[str] = COMMON_PARAMETERS,
    ):
        """
        Initialize the catalog.

        Args:
            routes: Route declarations (or manifest dicts) in registration order
            overrides: Manual path -> extra parameter names table
                (defaults to ROUTE_PARAMETER_OVERRIDES)
            common_parameters: Parameters accepted on every route
        """
        self._routes = list(routes)
        self._overrides = dict(
            ROUTE_PARAMETER_OVERRIDES if overrides is None else overrides
        )
        self._common = frozenset(common_parameters)

        self._lock = threading.Lock()
        self._exact: Optional[dict[str, frozenset[str]]] = None
        self._patterns: list[tuple[re.Pattern, frozenset[str]]] = []

    @classmethod
    def from_manifest(
        cls,
        manifest_path: Union[str, Path],
        overrides: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "RouteParameterCatalog":
        """Create a catalog from a YAML route manifest."""
        return cls(routes=load_route_manifest(Path(manifest_path)), overrides=overrides)

    @property
    def common_parameters(self) -> frozenset[str]:
        """The baseline parameter set."""
        return self._common

    @property
    def is_built(self) -> bool:
        return self._exact is not None

    def whitelist_for(self, path: Optional[str]) -> frozenset[str]:
        """
        Get the accepted parameter names for a request path.

        Args:
            path: Request path, with or without surrounding slashes

        Returns:
            Set of accepted parameter names
        """
        exact, patterns = self._ensure_built()
        normalized = normalize_route_path(path)

        if normalized in exact:
            return exact[normalized]

        for regex, params in patterns:
            if regex.match(normalized):
                return params

        return self._common

    def clear_cache(self) -> None:
        """Drop the built catalog; the next lookup rebuilds it."""
        with self._lock:
            self._exact = None
            self._patterns = []
        logger.debug("Route parameter catalog cache cleared")

    def rebuild(
        self,
        routes: Optional[Iterable[Union[RouteDeclaration, Mapping[str, Any]]]] = None,
    ) -> None:
        """
        Rebuild the catalog now, optionally from a new route table.

        Args:
            routes: Replacement route declarations (keeps current ones if None)
        """
        with self._lock:
            if routes is not None:
                self._routes = list(routes)
            self._build()

    # =========================================================================
    # Build
    # =========================================================================

    def _ensure_built(
        self,
    ) -> tuple[dict[str, frozenset[str]], list[tuple[re.Pattern, frozenset[str]]]]:
        with self._lock:
            if self._exact is None:
                self._build()
            return self._exact, self._patterns

    def _build(self) -> None:
        """Build the exact and pattern tables. Caller holds the lock."""
        exact: dict[str, frozenset[str]] = {}
        failures = 0

        for entry in self._routes:
            try:
                declaration = (
                    entry
                    if isinstance(entry, RouteDeclaration)
                    else RouteDeclaration.from_dict(entry)
                )
            except ValueError as e:
                failures += 1
                path = entry.get("path") if isinstance(entry, Mapping) else None
                if isinstance(path, str):
                    logger.warning(f"Route '{path}' falls back to baseline: {e}")
                    exact[normalize_route_path(path)] = self._common
                else:
                    logger.warning(f"Skipping unusable route declaration: {e}")
                continue

            exact[normalize_route_path(declaration.path)] = self._parameters_for(
                declaration
            )

        for path, extra in self._overrides.items():
            exact[normalize_route_path(path)] = self._common | frozenset(extra or ())

        patterns = []
        for route_path, params in exact.items():
            if _PLACEHOLDER_PATTERN.search(route_path):
                patterns.append((pattern_to_regex(route_path), params))

        self._exact = exact
        self._patterns = patterns

        logger.info(
            f"Built route parameter catalog: {len(exact)} routes, "
            f"{len(patterns)} patterns, {failures} skipped"
        )

    def _parameters_for(self, declaration: RouteDeclaration) -> frozenset[str]:
        """Baseline parameters plus the route's declared fields."""
        params = set(self._common)
        for name in declaration.fields:
            if not isinstance(name, str) or not name:
                logger.warning(
                    f"Ignoring non-string field {name!r} on route '{declaration.path}'"
                )
                continue
            params.add(flatten_field_name(name))
        return frozenset(params)
