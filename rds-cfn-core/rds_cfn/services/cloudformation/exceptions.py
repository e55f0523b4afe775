from typing import Optional

from rds_cfn.services.cloudformation.resource_provider import HandlerErrorCode


class HandlerError(Exception):
    """
    Base class for errors raised by the handlers themselves (as opposed to errors of the RDS API).
    Every handler error knows the CloudFormation error code it is reported with.
    """

    error_code: HandlerErrorCode = HandlerErrorCode.InternalFailure

    def __init__(self, message: str, error_code: Optional[HandlerErrorCode] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class NotFoundError(HandlerError):
    error_code = HandlerErrorCode.NotFound

    def __init__(self, resource_type: str, identifier: Optional[str]):
        super().__init__(f"Resource of type '{resource_type}' with identifier '{identifier}' was not found.")
        self.resource_type = resource_type
        self.identifier = identifier


class NotStabilizedError(HandlerError):
    error_code = HandlerErrorCode.NotStabilized

    def __init__(self, resource_type: str, identifier: Optional[str], reason: str):
        super().__init__(
            f"Resource of type '{resource_type}' with identifier '{identifier}' did not stabilize: {reason}"
        )


class NotUpdatableError(HandlerError):
    error_code = HandlerErrorCode.NotUpdatable

    def __init__(self, resource_type: str, properties: list[str]):
        super().__init__(
            f"Resource of type '{resource_type}' cannot update create-only properties: {', '.join(properties)}"
        )
        self.properties = properties


class InvalidRequestError(HandlerError):
    error_code = HandlerErrorCode.InvalidRequest
