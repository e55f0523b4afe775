import hashlib
import re
import uuid
from typing import Union

from rds_cfn.constants import DEFAULT_ENCODING

_re_non_alnum_hyphen = re.compile(r"[^a-z0-9-]")
_re_repeated_hyphens = re.compile(r"-{2,}")


def to_bytes(obj: Union[str, bytes], encoding: str = DEFAULT_ENCODING, errors="strict") -> bytes:
    """If ``obj`` is an instance of ``text_type``, return
    ``obj.encode(encoding, errors)``, otherwise return ``obj``"""
    return obj.encode(encoding, errors) if isinstance(obj, str) else obj


def short_uid_from_seed(seed: str) -> str:
    hash = hashlib.sha1(to_bytes(seed)).hexdigest()
    truncated_hash = hash[:32]
    return str(uuid.UUID(truncated_hash))[0:8]


def long_uid() -> str:
    return str(uuid.uuid4())


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def to_resource_name(value: str) -> str:
    """
    Turns an arbitrary string into something accepted as an RDS resource name: lower case letters,
    digits and single hyphens.

    >>> to_resource_name("My_Stack--Name")
    'my-stack-name'
    """
    name = _re_non_alnum_hyphen.sub("-", value.lower())
    return _re_repeated_hyphens.sub("-", name).strip("-")
