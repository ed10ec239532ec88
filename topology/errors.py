"""Construction-time errors raised while declaring a topology.

Every error is raised before anything is handed to the provisioning
engine, and each message names the offending declaration.
"""


class TopologyError(Exception):
    """Base error for an invalid resource graph."""


class DuplicateName(TopologyError):
    """Two resources of the same kind declared with the same name."""


class DanglingReference(TopologyError):
    """A binding, grant, route target or output points at an unresolved handle."""


class RouteConflict(TopologyError):
    """Two routes share (path, method) or a route key within one API."""


class PolicyViolation(TopologyError):
    """A declared attribute falls outside platform-accepted bounds."""
