"""Routing tables for the REST and WebSocket API surfaces."""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from topology.errors import PolicyViolation, RouteConflict

if TYPE_CHECKING:
    from topology.handles import FunctionHandle, RestApiHandle, WebSocketApiHandle

# OPTIONS is answered by the API's CORS preflight.
REST_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "ANY")

LIFECYCLE_ROUTE_KEYS = ("$connect", "$disconnect")
RESERVED_ROUTE_KEYS = LIFECYCLE_ROUTE_KEYS + ("$default",)

_LITERAL_PART = re.compile(r"^[A-Za-z0-9._-]+$")
_PLACEHOLDER_PART = re.compile(r"^\{[A-Za-z_][A-Za-z0-9_]*\+?\}$")


def split_path(path: str) -> list[str]:
    """Split a route path such as ``/stats/{userId}`` into its segments.

    Raises:
        PolicyViolation: If a segment is neither a literal nor a placeholder.
    """
    parts = [part for part in path.strip().split("/") if part]
    if not parts:
        raise PolicyViolation(f"Route path '{path}' has no segments")
    for part in parts:
        if not (_LITERAL_PART.match(part) or _PLACEHOLDER_PART.match(part)):
            raise PolicyViolation(f"Invalid path segment '{part}' in '{path}'")
    for part in parts[:-1]:
        if part.endswith("+}"):
            raise PolicyViolation(f"Greedy placeholder '{part}' must be the last segment of '{path}'")
    return parts


def is_placeholder(part: str) -> bool:
    return part.startswith("{")


@dataclass(frozen=True)
class RestRoute:
    api: "RestApiHandle"
    path: str
    method: str
    target: "FunctionHandle"

    def dependencies(self) -> tuple:
        return (self.api, self.target)


@dataclass(eq=False)
class RestResource:
    """One node of a REST API's path tree.

    Children are keyed by path segment, so a segment shared by several
    routes is a single node carrying several method bindings.
    """

    path_part: str
    parent: "RestResource | None" = None
    children: dict[str, "RestResource"] = field(default_factory=dict)
    methods: dict[str, RestRoute] = field(default_factory=dict)

    @classmethod
    def root(cls) -> "RestResource":
        return cls(path_part="")

    @property
    def path(self) -> str:
        if self.parent is None:
            return "/"
        parent_path = self.parent.path.rstrip("/")
        return f"{parent_path}/{self.path_part}"

    def walk(self) -> Iterator["RestResource"]:
        yield self
        for child in self.children.values():
            yield from child.walk()

    def find(self, parts: list[str]) -> "RestResource | None":
        node = self
        for part in parts:
            node = node.children.get(part)
            if node is None:
                return None
        return node

    def check_placeholders(self, parts: list[str]) -> None:
        """Reject a path that would give one node two differently named placeholders.

        Raises:
            RouteConflict: If a sibling placeholder already exists under another name.
        """
        node = self
        for part in parts:
            if is_placeholder(part):
                for sibling in node.children:
                    if is_placeholder(sibling) and sibling != part:
                        raise RouteConflict(
                            f"Path segment '{part}' conflicts with '{sibling}' under '{node.path}'"
                        )
            node = node.children.get(part)
            if node is None:
                return

    def ensure(self, parts: list[str]) -> "RestResource":
        """Return the node for ``parts``, creating missing segments."""
        node = self
        for part in parts:
            child = node.children.get(part)
            if child is None:
                child = RestResource(path_part=part, parent=node)
                node.children[part] = child
            node = child
        return node


@dataclass(frozen=True)
class WebSocketRoute:
    api: "WebSocketApiHandle"
    route_key: str
    target: "FunctionHandle"

    def dependencies(self) -> tuple:
        return (self.api, self.target)
