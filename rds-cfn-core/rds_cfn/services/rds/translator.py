"""
Pure mappings between CloudFormation resource models and RDS API requests and responses.

Functions named ``translate_to_*_request`` return the keyword arguments of a single boto call,
``translate_from_*`` turn API shapes back into resource models. Nothing in here talks to AWS.
"""

from typing import Optional

from rds_cfn.services.rds.tagging import TagSet, to_sdk_tags
from rds_cfn.utils.aws.tags import tag_list_to_dict
from rds_cfn.utils.collections import remove_none_values_from_dict, select_attributes

INTEGRATION_UPDATABLE_PROPERTIES = ["IntegrationName", "Description", "DataFilter"]


def resource_tags(model: Optional[dict]) -> dict[str, str]:
    return tag_list_to_dict((model or {}).get("Tags"))


def integration_identifier(model: dict) -> Optional[str]:
    return model.get("IntegrationArn") or model.get("IntegrationName")


# AWS::RDS::Integration


def translate_to_create_integration_request(model: dict, tags: TagSet) -> dict:
    request = {
        "SourceArn": model.get("SourceArn"),
        "TargetArn": model.get("TargetArn"),
        "IntegrationName": model.get("IntegrationName"),
        "KMSKeyId": model.get("KMSKeyId"),
        "AdditionalEncryptionContext": model.get("AdditionalEncryptionContext") or None,
        "Description": model.get("Description"),
        "DataFilter": model.get("DataFilter"),
        "Tags": to_sdk_tags(tags) or None,
    }
    return remove_none_values_from_dict(request)


def translate_to_describe_integration_request(model: dict) -> dict:
    return {"IntegrationIdentifier": integration_identifier(model)}


def translate_to_modify_integration_request(previous: Optional[dict], desired: dict) -> dict:
    """Only properties whose value actually changed are part of the request."""
    previous = previous or {}
    request = {"IntegrationIdentifier": integration_identifier(desired)}
    for key in INTEGRATION_UPDATABLE_PROPERTIES:
        if key in desired and desired.get(key) != previous.get(key):
            request[key] = desired[key]
    return request


def translate_to_delete_integration_request(model: dict) -> dict:
    return {"IntegrationIdentifier": integration_identifier(model)}


def translate_to_list_integrations_request(next_token: Optional[str]) -> dict:
    return remove_none_values_from_dict({"Marker": next_token})


def translate_from_integration(integration: dict) -> dict:
    model = select_attributes(
        integration,
        [
            "IntegrationName",
            "IntegrationArn",
            "SourceArn",
            "TargetArn",
            "KMSKeyId",
            "AdditionalEncryptionContext",
            "Description",
            "DataFilter",
        ],
    )
    if create_time := integration.get("CreateTime"):
        model["CreateTime"] = create_time.isoformat() if hasattr(create_time, "isoformat") else create_time
    if "Tags" in integration:
        model["Tags"] = integration["Tags"]
    return model


def translate_from_describe_integrations(response: dict) -> Optional[dict]:
    integrations = response.get("Integrations") or []
    return translate_from_integration(integrations[0]) if integrations else None


# AWS::RDS::DBParameterGroup


def translate_to_create_db_parameter_group_request(model: dict, tags: TagSet) -> dict:
    request = {
        "DBParameterGroupName": model.get("DBParameterGroupName"),
        "DBParameterGroupFamily": model.get("Family"),
        "Description": model.get("Description"),
        "Tags": to_sdk_tags(tags) or None,
    }
    return remove_none_values_from_dict(request)


def translate_to_describe_db_parameter_groups_request(model: dict) -> dict:
    return {"DBParameterGroupName": model.get("DBParameterGroupName")}


def translate_to_delete_db_parameter_group_request(model: dict) -> dict:
    return {"DBParameterGroupName": model.get("DBParameterGroupName")}


def translate_to_list_db_parameter_groups_request(next_token: Optional[str]) -> dict:
    return remove_none_values_from_dict({"Marker": next_token})


def translate_from_db_parameter_group(group: dict) -> dict:
    model = {
        "DBParameterGroupName": group.get("DBParameterGroupName"),
        "Family": group.get("DBParameterGroupFamily"),
        "Description": group.get("Description"),
    }
    return remove_none_values_from_dict(model)


def apply_method(name: str, current: dict[str, dict]) -> str:
    if (current.get(name) or {}).get("ApplyType") == "dynamic":
        return "immediate"
    return "pending-reboot"


def translate_to_parameters(parameters: dict[str, str], current: dict[str, dict]) -> list[dict]:
    """
    Builds the ``Parameters`` list of a modify request. Dynamic parameters are applied immediately,
    static ones on the next reboot of the instances using the group.
    """
    return [
        {
            "ParameterName": name,
            "ParameterValue": str(value),
            "ApplyMethod": apply_method(name, current),
        }
        for name, value in parameters.items()
    ]


def translate_to_reset_parameters(names: list[str], current: dict[str, dict]) -> list[dict]:
    return [{"ParameterName": name, "ApplyMethod": apply_method(name, current)} for name in names]
