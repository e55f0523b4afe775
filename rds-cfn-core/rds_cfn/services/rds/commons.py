from botocore.exceptions import ConnectionError, HTTPClientError, ParamValidationError

from rds_cfn.services.cloudformation.error_rules import (
    ErrorRuleSet,
    conditional,
    fail_with,
)
from rds_cfn.services.cloudformation.exceptions import HandlerError
from rds_cfn.services.cloudformation.resource_provider import HandlerErrorCode

ACCESS_DENIED_ERROR_CODES = ("AccessDenied", "AccessDeniedException", "NotAuthorized")

DEFAULT_ERROR_RULE_SET = (
    ErrorRuleSet()
    .with_error_codes(
        fail_with(HandlerErrorCode.ServiceInternalError), "ClientUnavailable", "InternalFailure"
    )
    .with_error_codes(fail_with(HandlerErrorCode.AccessDenied), *ACCESS_DENIED_ERROR_CODES)
    .with_error_codes(fail_with(HandlerErrorCode.Throttling), "ThrottlingException", "Throttling")
    .with_error_codes(
        fail_with(HandlerErrorCode.InvalidRequest),
        "InvalidParameterCombination",
        "InvalidParameterValue",
        "MissingParameter",
    )
    .with_error_classes(fail_with(HandlerErrorCode.InvalidRequest), ParamValidationError)
    .with_error_classes(fail_with(HandlerErrorCode.NetworkFailure), ConnectionError, HTTPClientError)
    .with_error_classes(conditional(lambda e: fail_with(e.error_code)), HandlerError)
)
