"""
Error taxonomy for the Power BI provisioning client.

Every error carries a message template plus a mapping of substitution
parameters, so callers get a short, human-readable message instead of raw
platform error bodies.

Classes:
    PowerBIError: Base class for all client errors
    ConfigurationError: Missing or malformed input, never retried
    CommunicationError: Non-2xx HTTP response after the transport retry
    DomainError: Recognized failure of a remote operation or reference
    UnexpectedCreationError: Catch-all raised by the provisioning workflow
"""

from typing import Any, Dict, Optional

BASIC_ERROR_TEXT = "Power BI client ended with error."


class ParamNames:
    """Substitution placeholders used in message templates."""
    PARAMS = "%PARAMS%"
    RESOURCE_NAME = "%RESOURCE_NAME%"
    RESOURCE_ID = "%RESOURCE_ID%"
    SOURCE_SYSTEM = "%SOURCE_SYSTEM%"
    STATUS = "%STATUS%"
    STATUS_TEXT = "%STATUS_TEXT%"


class ErrorMessages:
    """Message templates shared by the error classes."""
    RESOURCE_NOT_FOUND = f"Resource not found: {ParamNames.PARAMS}"
    UNEXPECTED_CREATION_ERROR = "Unexpected error with Power BI workspace creation!"
    MISSING_INIT_CONFIGURATION = f"Missing provisioning configuration: {ParamNames.PARAMS}"
    MISSING_REQUIRED_PARAM = f"Missing required param: {ParamNames.PARAMS}"
    INVALID_CONFIGURATION = f"Invalid configuration: {ParamNames.PARAMS}"
    COMMUNICATION_ERROR = (
        f"Power BI api response error status: {ParamNames.STATUS}, "
        f"{ParamNames.STATUS_TEXT}. Please try it later."
    )
    UNKNOWN_SOURCE_SYSTEM = (
        f'For given source system "{ParamNames.SOURCE_SYSTEM}" configuration not exists.'
    )
    UNKNOWN_RESOURCE = (
        f'Given resource "{ParamNames.RESOURCE_NAME}" with id: '
        f'"{ParamNames.RESOURCE_ID}" not found.'
    )
    FAILED_IMPORT = "Failed to import into workspace."
    DATASET_NOT_FOUND = f'No dataset named "{ParamNames.PARAMS}" found after import.'
    AMBIGUOUS_DATASET = f'More than one dataset named "{ParamNames.PARAMS}" found after import.'
    TOKEN_EXCEPTION = f"An error occurred while generating an access token: {ParamNames.PARAMS}"


class ResourceNames:
    """Resource kind names used in UNKNOWN_RESOURCE messages."""
    CAPACITY = "Capacity"
    WORKSPACE = "Workspace"
    FOLDER = "Folder"
    DATASOURCE = "Datasource"


def set_message_params(message: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Replace each placeholder key in ``message`` with its value."""
    msg = message
    if msg and params:
        for key, value in params.items():
            msg = msg.replace(key, str(value))
    return msg


class PowerBIError(Exception):
    """
    Base class for all errors raised by the client.

    Attributes:
        template: Unrendered message template
        params: Substitution parameters applied to the template
        message: Fully rendered message
    """

    def __init__(self, template: str, params: Optional[Dict[str, Any]] = None):
        self.template = template
        self.params = dict(params or {})
        self.message = set_message_params(f"{BASIC_ERROR_TEXT} {template}", self.params)
        super().__init__(self.message)


class ConfigurationError(PowerBIError):
    """Required input missing or malformed at call time."""

    def __init__(
        self,
        template: str = ErrorMessages.INVALID_CONFIGURATION,
        params: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(template, params)


class MissingParameterError(ConfigurationError):
    """A required identifier argument was not supplied."""

    def __init__(self, names: str):
        self.names = names
        super().__init__(ErrorMessages.MISSING_REQUIRED_PARAM, {ParamNames.PARAMS: names})


class AuthenticationError(ConfigurationError):
    """The client-credentials exchange with the identity provider failed."""

    def __init__(self, detail: str):
        super().__init__(ErrorMessages.TOKEN_EXCEPTION, {ParamNames.PARAMS: detail})


class CommunicationError(PowerBIError):
    """
    Non-2xx HTTP response surfaced by the transport.

    Attributes:
        status_code: HTTP status code (synthetic for transport failures)
        status_text: HTTP reason phrase or failure description
        response_text: Raw response body, kept for logging only
    """

    def __init__(self, status_code: int, status_text: str, response_text: str = ""):
        self.status_code = status_code
        self.status_text = status_text
        self.response_text = response_text
        super().__init__(
            ErrorMessages.COMMUNICATION_ERROR,
            {ParamNames.STATUS: status_code, ParamNames.STATUS_TEXT: status_text},
        )


class DomainError(PowerBIError):
    """Recognized failure of a remote operation or an unresolvable reference."""


class UnknownResourceError(DomainError):

    def __init__(self, resource_name: str, resource_id: str):
        self.resource_name = resource_name
        self.resource_id = resource_id
        super().__init__(
            ErrorMessages.UNKNOWN_RESOURCE,
            {ParamNames.RESOURCE_NAME: resource_name, ParamNames.RESOURCE_ID: resource_id},
        )


class FailedImportError(DomainError):

    def __init__(self, import_id: Optional[str] = None):
        self.import_id = import_id
        super().__init__(ErrorMessages.FAILED_IMPORT)


class DatasetNotFoundError(DomainError):

    def __init__(self, dataset_name: str):
        self.dataset_name = dataset_name
        super().__init__(ErrorMessages.DATASET_NOT_FOUND, {ParamNames.PARAMS: dataset_name})


class AmbiguousDatasetError(DomainError):

    def __init__(self, dataset_name: str, count: int):
        self.dataset_name = dataset_name
        self.count = count
        super().__init__(ErrorMessages.AMBIGUOUS_DATASET, {ParamNames.PARAMS: dataset_name})


class UnexpectedCreationError(PowerBIError):
    """
    Raised when any step of the provisioning workflow fails.

    The outward message is deliberately generic; the failing exception is
    chained as ``__cause__`` and exposed through ``original``.
    """

    def __init__(self, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(ErrorMessages.UNEXPECTED_CREATION_ERROR)
