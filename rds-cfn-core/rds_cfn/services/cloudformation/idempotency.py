import logging
from typing import Callable, Optional, TypeVar

from rds_cfn.services.cloudformation.exceptions import NotFoundError
from rds_cfn.services.cloudformation.resource_provider import ProgressEvent

LOG = logging.getLogger(__name__)

Properties = TypeVar("Properties")


def safe_create(
    probe: Callable[[Properties], Optional[Properties]],
    create: Callable[[ProgressEvent[Properties]], ProgressEvent[Properties]],
    progress: ProgressEvent[Properties],
    resource_type: str,
    identifier: Optional[str],
    probing_enabled: bool = True,
) -> ProgressEvent[Properties]:
    """
    Creates a resource at most once per reconciliation.

    The probe looks the resource up by its natural key first. If it already exists (e.g., because a
    previous invocation crashed between creating it and reporting back), creation is skipped and the
    chain continues with the model as returned by the probe. Only if the probe reports the resource
    as missing (``NotFoundError`` or ``None``) is ``create`` called. Any other probe error is raised.
    """
    if probing_enabled:
        try:
            existing = probe(progress.resource_model)
        except NotFoundError:
            existing = None

        if existing is not None:
            LOG.info(
                "Resource %s with identifier %s already exists, skipping creation",
                resource_type,
                identifier,
            )
            model = {**(progress.resource_model or {}), **existing}
            return ProgressEvent.progress(model, progress.callback_context)

    return create(progress)
