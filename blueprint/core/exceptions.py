"""
Domain errors raised by the decision tree engine and its collaborators.

Routers translate these into HTTP responses; the engine itself never raises
for expected conditions such as a purpose/platform pair without a path.
"""


class ConfigurationError(Exception):
    """The decision tree catalogue is malformed. Fatal at startup."""


class InvalidDecisionError(ValueError):
    """A decision references an unknown node id or an unknown choice value."""


class SessionNotFoundError(ValueError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class IncompleteSessionError(ValueError):
    """Purpose or platform missing when handing a session off to generation."""


class DuplicateAdvancementError(Exception):
    def __init__(self, session_id: str, node_id: str):
        super().__init__(f"Decision for '{node_id}' already in flight for session {session_id}")
        self.session_id = session_id
        self.node_id = node_id


class PersistenceError(Exception):
    """The session store could not read or write a session."""


class BlueprintGenerationError(Exception):
    """The language model returned nothing usable as a project blueprint."""
