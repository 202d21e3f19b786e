"""
Error taxonomy shared by the polygon store, services and routers
"""
from typing import Dict, List, Optional


class ServiceError(Exception):
    """Base class for all service errors"""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Structural or semantic field faults, always with readable messages"""

    status_code = 422

    def __init__(
        self,
        errors: List[str],
        message: str = "Validation failed",
        field_errors: Optional[Dict[str, List[str]]] = None
    ):
        super().__init__(f"{message}: {', '.join(errors)}" if errors else message)
        self.errors = list(errors)
        self.field_errors = field_errors or {}
        self.summary = message


class PolygonValidationError(ValidationError):
    """A polygon record failed validation in the polygon store"""

    def __init__(self, polygon_id: str, errors: List[str]):
        super().__init__(errors, message="Invalid polygon")
        self.polygon_id = polygon_id


class NotFoundError(ServiceError):
    """Operation referenced a resource that does not exist"""

    status_code = 404

    def __init__(self, resource: str, resource_id):
        super().__init__(f"{resource} with ID {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class OwnershipError(NotFoundError):
    """Authenticated user does not own the resource; reported as not found"""


class ConflictError(ServiceError):
    """A uniqueness constraint would be violated"""

    status_code = 422


class RemoteUnavailableError(ServiceError):
    """A network-dependent operation could not complete"""

    status_code = 503


class ModeConflictError(ServiceError):
    """Drawing and editing modes are mutually exclusive"""

    status_code = 409


class OperationInProgressError(ServiceError):
    """An operation was started while the previous one is still running"""

    status_code = 409


class DegenerateGeometryError(ValueError):
    """Geometry cannot produce the requested metric (empty ring, zero perimeter)"""
