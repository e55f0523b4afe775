from unittest.mock import MagicMock

import pytest

from rds_cfn.services.cloudformation.exceptions import NotFoundError
from rds_cfn.services.cloudformation.idempotency import safe_create
from rds_cfn.services.cloudformation.resource_provider import CallbackContext, ProgressEvent


@pytest.fixture
def progress():
    return ProgressEvent.progress({"Name": "foo", "Description": "desired"}, CallbackContext())


def test_existing_resource_is_not_created(progress):
    probe = MagicMock(return_value={"Name": "foo", "Arn": "arn:foo"})
    create = MagicMock()

    event = safe_create(probe, create, progress, "AWS::RDS::Foo", "foo")

    probe.assert_called_once_with(progress.resource_model)
    create.assert_not_called()
    assert event.resource_model == {"Name": "foo", "Description": "desired", "Arn": "arn:foo"}


def test_missing_resource_is_created_once(progress):
    probe = MagicMock(side_effect=NotFoundError("AWS::RDS::Foo", "foo"))
    created = ProgressEvent.defer(progress.resource_model, progress.callback_context, 6)
    create = MagicMock(return_value=created)

    event = safe_create(probe, create, progress, "AWS::RDS::Foo", "foo")

    create.assert_called_once_with(progress)
    assert event is created


def test_probe_returning_none_means_missing(progress):
    create = MagicMock(return_value=progress)

    safe_create(MagicMock(return_value=None), create, progress, "AWS::RDS::Foo", "foo")

    create.assert_called_once()


def test_other_probe_errors_propagate(progress):
    create = MagicMock()

    with pytest.raises(PermissionError):
        safe_create(
            MagicMock(side_effect=PermissionError("denied")),
            create,
            progress,
            "AWS::RDS::Foo",
            "foo",
        )
    create.assert_not_called()


def test_probing_disabled(progress):
    probe = MagicMock()
    create = MagicMock(return_value=progress)

    safe_create(probe, create, progress, "AWS::RDS::Foo", "foo", probing_enabled=False)

    probe.assert_not_called()
    create.assert_called_once_with(progress)
