from enum import Enum
from typing import List, Optional


class ErrorCategory(str, Enum):
    PARSE = "parse"
    VALIDATION = "validation"
    INVENTORY = "inventory"
    CONNECTIVITY = "connectivity"
    EXECUTION = "execution"
    PROBE = "probe"
    CONFIGURATION = "configuration"


class FleetmonError(Exception):
    """Base exception for fleetmon with a category."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.EXECUTION):
        super().__init__(message)
        self.message = message
        self.category = category

    def to_dict(self):
        return {"error": self.message, "category": self.category.value}


class InventoryParseError(FleetmonError):
    """Inventory file is missing or not well-formed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, ErrorCategory.PARSE)
        self.path = path


class InventoryValidationError(FleetmonError):
    """Inventory has one or more validation issues."""

    def __init__(self, issues: List):
        super().__init__(
            f"Inventory has {len(issues)} validation error(s)", ErrorCategory.VALIDATION
        )
        self.issues = list(issues)

    def to_dict(self):
        data = super().to_dict()
        data["issues"] = [str(issue) for issue in self.issues]
        return data


class DuplicateNameError(FleetmonError):
    def __init__(self, name: str):
        super().__init__(f"Server '{name}' already exists", ErrorCategory.INVENTORY)
        self.name = name


class NotFoundError(FleetmonError):
    def __init__(self, name: str):
        super().__init__(f"Server '{name}' not found", ErrorCategory.INVENTORY)
        self.name = name


class UnknownFieldError(FleetmonError):
    def __init__(self, field: str):
        super().__init__(f"Unknown field '{field}'", ErrorCategory.INVENTORY)
        self.field = field


class FieldValueError(FleetmonError):
    def __init__(self, field: str, value: str, reason: str):
        super().__init__(
            f"Invalid value {value!r} for field '{field}': {reason}",
            ErrorCategory.INVENTORY,
        )
        self.field = field
        self.value = value


class MissingFieldsError(FleetmonError):
    """Required values were not supplied."""

    def __init__(self, fields: List[str]):
        super().__init__(
            f"Missing required argument(s): {', '.join(fields)}", ErrorCategory.INVENTORY
        )
        self.fields = list(fields)


class ConnectivityError(FleetmonError):
    """Remote session could not be opened within its timeout."""

    def __init__(self, server: str, message: str):
        super().__init__(f"{server}: {message}", ErrorCategory.CONNECTIVITY)
        self.server = server


class StepError(FleetmonError):
    """A provisioning step failed on one server."""

    def __init__(self, step: str, server: str, message: str):
        super().__init__(f"{server}: {step} failed: {message}", ErrorCategory.EXECUTION)
        self.step = step
        self.server = server


class ProbeError(FleetmonError):
    """A metrics endpoint did not answer successfully."""

    def __init__(self, server: str, capability: str, message: str):
        super().__init__(f"{server} ({capability}): {message}", ErrorCategory.PROBE)
        self.server = server
        self.capability = capability
        self.reason = message


class CentralStackError(FleetmonError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.CONFIGURATION)
