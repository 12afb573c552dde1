from typing import Any, Dict, Optional


class CatalogError(Exception):
    """
    Base class for every error raised by the catalog core.

    Services raise these instead of HTTP errors so they can be used outside
    a request. The API layer turns them into JSON responses using
    `status_code` and `to_dict()`.
    """
    code = "CATALOG_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details: Dict[str, Any] = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CatalogError):
    """Malformed characteristic definition or characteristic value."""
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, details)


class NotFoundError(CatalogError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found."
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = str(resource_id)
        super().__init__(message, details)


class InUseError(CatalogError):
    """Delete blocked because live materials still reference the record."""
    code = "IN_USE"
    status_code = 409

    def __init__(self, resource: str, usage_count: int):
        super().__init__(
            f"Cannot delete this {resource.lower()} because it is used by {usage_count} material(s).",
            {"resource": resource, "usage_count": usage_count},
        )


class ConflictError(CatalogError):
    code = "CONFLICT"
    status_code = 409


class ConsistencyError(CatalogError):
    """
    The stored aggregate contradicts itself (e.g. the characteristic order
    references a value row that does not exist). Never expected under
    correct use of the material service.
    """
    code = "CONSISTENCY_ERROR"
    status_code = 500
