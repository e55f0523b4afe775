from typing import Iterable, TypedDict


class Tag(TypedDict):
    Key: str
    Value: str


def tag_list_to_dict(tag_list: Iterable[Tag] | None) -> dict[str, str]:
    """
    Converts a list of Tag objects into a dictionary, mapping each tag's
    "Key" to its "Value". ``None`` is treated like an empty list, since
    CloudFormation omits the property entirely if no tags are declared.

    >>>assert tag_list_to_dict([{"Key": "key", "Value": "value"}]) == {"key": "value"}

    :param tag_list: A list of Tag objects where each tag contains a "Key"
        and a "Value" pair.
    :return: A dictionary where each key corresponds to a tag's "Key" and
        each value corresponds to a tag's "Value".
    """
    return {tag["Key"]: tag.get("Value") for tag in tag_list or []}


def tag_dict_to_list(tag_dict: dict[str, str] | None) -> list[Tag]:
    """
    Converts a dictionary of tags into a list of Tag objects formatted as dictionaries containing
    'Key' and 'Value'.

    >>>assert tag_dict_to_list({"key": "value"}) == [{"Key": "key", "Value": "value"}]

    :param tag_dict: A dictionary where keys represent tag names and values represent tag values.
    :return: A list of dictionaries where each dictionary contains 'Key' and 'Value' representing
        a tag.
    """
    return [{"Key": key, "Value": value} for key, value in (tag_dict or {}).items()]
