import re
from typing import Optional

from rds_cfn.utils.strings import short_uid_from_seed, to_resource_name

_re_stack_arn = re.compile(r"^arn:[^:]+:cloudformation:[^:]*:[^:]*:stack/(?P<name>[^/]+)/")

SUFFIX_LENGTH = 8


class IdentifierFactory:
    """
    Generates physical resource names for resources whose template leaves the name empty, in the
    form ``<stack name>-<logical resource id>-<suffix>``.

    The suffix is derived from the client request token, so every invocation that belongs to the same
    stack operation generates the same name.
    """

    def __init__(self, stack_name: str, resource_identifier: str, max_length: int):
        self.stack_name = stack_name
        self.resource_identifier = resource_identifier
        self.max_length = max_length

    def new_identifier(
        self,
        stack_id: Optional[str],
        logical_resource_id: Optional[str],
        request_token: str,
    ) -> str:
        stack_name = self.stack_name
        if stack_id and (match := _re_stack_arn.match(stack_id)):
            stack_name = match.group("name")

        prefix = to_resource_name(f"{stack_name}-{logical_resource_id or self.resource_identifier}")
        if not prefix or not prefix[0].isalpha():
            prefix = to_resource_name(f"{self.stack_name}-{prefix}")

        suffix = short_uid_from_seed(request_token)
        prefix = prefix[: self.max_length - SUFFIX_LENGTH - 1].rstrip("-")
        return f"{prefix}-{suffix}"
