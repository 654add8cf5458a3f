"""
Exception taxonomy for the Engagement Engine services.

Services raise these; the API layer maps them to HTTP status codes.
Constraint violations and resource exhaustion are never raised: they are
returned as structured data so batch operations can continue.
"""


class EngagementEngineError(Exception):
    """Base class for all service-level errors."""


class NotFoundError(EngagementEngineError, LookupError):
    """
    A referenced plan, optimization result, allocation or HCP does not exist.

    Raised before any mutation takes place.
    """

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateTransitionError(EngagementEngineError, ValueError):
    """
    An operation is not allowed from the entity's current status,
    e.g. pausing a plan that is not executing.
    """

    def __init__(self, message: str, current_status: str):
        self.current_status = current_status
        super().__init__(f"{message}. Current status: {current_status}")


class OutcomeUnavailableError(EngagementEngineError):
    """An outcome strategy could not produce an outcome for an allocation."""
