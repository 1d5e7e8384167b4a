"""
Dataset lifecycle state machine.

The transition table below is the single source of truth for which
operation is legal from which dataset status. Both the service layer
(server-side validation) and the ``available_actions`` field of dataset
responses (client-side enabling) derive from it.
"""

from enum import Enum

from agriflow.core.exceptions import InvalidTransitionError
from agriflow.models.dataset import DatasetStatus


class DatasetOperation(str, Enum):
    """Operations that move a dataset through its lifecycle."""

    AUTO_ANNOTATE = "auto_annotate"
    VALIDATE = "validate"
    AUGMENT = "augment"


class AugmentationTransformer(str, Enum):
    """Registry of augmentation transformers supported by the ML service."""

    VERTICAL_FLIP = "vertical_flip"
    HORIZONTAL_FLIP = "horizontal_flip"
    TRANSPOSE = "transpose"
    CENTER_CROP = "center_crop"


TRANSITIONS: dict[tuple[DatasetStatus, DatasetOperation], DatasetStatus] = {
    (DatasetStatus.RAW, DatasetOperation.AUTO_ANNOTATE): DatasetStatus.AUTO_ANNOTATED,
    (DatasetStatus.AUTO_ANNOTATED, DatasetOperation.VALIDATE): DatasetStatus.VALIDATED,
    (DatasetStatus.VALIDATED, DatasetOperation.AUGMENT): DatasetStatus.AUGMENTED,
    # Augmentation is reentrant
    (DatasetStatus.AUGMENTED, DatasetOperation.AUGMENT): DatasetStatus.AUGMENTED,
}

# Statuses a dataset must have reached before it can be trained on
TRAINABLE_STATUSES = (DatasetStatus.VALIDATED, DatasetStatus.AUGMENTED)


def can_transition(current: DatasetStatus | str, operation: DatasetOperation) -> DatasetStatus:
    """
    Resolve the target status of ``operation`` applied from ``current``.

    Args:
        current: Current dataset status.
        operation: Requested operation.

    Returns:
        Status the dataset moves to.

    Raises:
        InvalidTransitionError: If the table has no such edge.
    """
    status = DatasetStatus(current)
    target = TRANSITIONS.get((status, operation))
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {operation.value} a dataset with status {status.value}",
            current=status.value,
            operation=operation.value,
        )
    return target


def available_actions(current: DatasetStatus | str) -> list[DatasetOperation]:
    """List the operations legal from ``current``, in table order."""
    status = DatasetStatus(current)
    return [operation for (source, operation) in TRANSITIONS if source == status]
