"""
Classification of errors raised by remote API calls.

An ``ErrorRuleSet`` maps a caught error to an ``ErrorStatus``: fail with a CloudFormation error
code, ask CloudFormation to come back after a delay, or ignore the error. Rule sets are composed
rather than subclassed: a resource specific set holds its own rules plus a reference to the set it
extends, and its own rules always win::

    INTEGRATION_RULES = (
        ErrorRuleSet.extend(DEFAULT_ERROR_RULE_SET)
        .with_error_codes(fail_with(HandlerErrorCode.NotFound), "IntegrationNotFoundFault")
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Type

from botocore.exceptions import ClientError

from rds_cfn.services.cloudformation.resource_provider import HandlerErrorCode

LOG = logging.getLogger(__name__)


class ErrorStatus:
    """Outcome of classifying an error."""


@dataclass(frozen=True)
class FailWith(ErrorStatus):
    error_code: HandlerErrorCode


@dataclass(frozen=True)
class Retry(ErrorStatus):
    delay: int


@dataclass(frozen=True)
class Ignore(ErrorStatus):
    pass


@dataclass(frozen=True)
class Conditional(ErrorStatus):
    """Decides on the actual status once the error (and thus its message) is known."""

    resolver: Callable[[Exception], ErrorStatus]

    def resolve(self, error: Exception) -> ErrorStatus:
        status = self.resolver(error)
        if isinstance(status, Conditional):
            return status.resolve(error)
        return status


def fail_with(error_code: HandlerErrorCode) -> FailWith:
    return FailWith(error_code)


def retry(delay: int) -> Retry:
    return Retry(delay)


def ignore() -> Ignore:
    return Ignore()


def conditional(resolver: Callable[[Exception], ErrorStatus]) -> Conditional:
    return Conditional(resolver)


DEFAULT_ERROR_STATUS = fail_with(HandlerErrorCode.InternalFailure)


def get_error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def get_error_message(error: Exception) -> str:
    """Returns the most specific message of an error, never an empty string."""
    if isinstance(error, ClientError):
        message = error.response.get("Error", {}).get("Message")
        if message:
            return message
    return str(error) or type(error).__name__


class ErrorRuleSet:
    """
    Ordered rules keyed by API error code, by exception class, or by predicate. Instances are
    immutable, every ``with_*`` call returns a new rule set.
    """

    def __init__(
        self,
        base: Optional[ErrorRuleSet] = None,
        error_codes: Optional[dict[str, ErrorStatus]] = None,
        error_classes: Optional[dict[Type[BaseException], ErrorStatus]] = None,
        predicates: tuple[tuple[Callable[[Exception], bool], ErrorStatus], ...] = (),
    ):
        self.base = base
        self._error_codes = dict(error_codes or {})
        self._error_classes = dict(error_classes or {})
        self._predicates = tuple(predicates)

    @classmethod
    def extend(cls, base: ErrorRuleSet) -> ErrorRuleSet:
        return cls(base=base)

    def _copy(self, **kwargs) -> ErrorRuleSet:
        params = {
            "base": self.base,
            "error_codes": self._error_codes,
            "error_classes": self._error_classes,
            "predicates": self._predicates,
        }
        params.update(kwargs)
        return ErrorRuleSet(**params)

    def with_error_codes(self, status: ErrorStatus, *error_codes: str) -> ErrorRuleSet:
        codes = dict(self._error_codes)
        codes.update({code: status for code in error_codes})
        return self._copy(error_codes=codes)

    def with_error_classes(
        self, status: ErrorStatus, *error_classes: Type[BaseException]
    ) -> ErrorRuleSet:
        classes = dict(self._error_classes)
        classes.update({error_class: status for error_class in error_classes})
        return self._copy(error_classes=classes)

    def with_predicate(
        self, status: ErrorStatus, predicate: Callable[[Exception], bool]
    ) -> ErrorRuleSet:
        return self._copy(predicates=self._predicates + ((predicate, status),))

    def find(self, error: Exception) -> Optional[ErrorStatus]:
        """Returns the unresolved status of the first matching rule, or None."""
        error_code = get_error_code(error)
        if error_code is not None and error_code in self._error_codes:
            return self._error_codes[error_code]

        for error_class in type(error).__mro__:
            if error_class in self._error_classes:
                return self._error_classes[error_class]

        for predicate, status in self._predicates:
            if predicate(error):
                return status

        if self.base is not None:
            return self.base.find(error)
        return None

    def classify(self, error: Exception) -> ErrorStatus:
        status = self.find(error)
        if status is None:
            LOG.debug("No error rule matches %s, using default status", type(error).__name__)
            return DEFAULT_ERROR_STATUS
        if isinstance(status, Conditional):
            return status.resolve(error)
        return status
