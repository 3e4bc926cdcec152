"""
Request Validation

Identifier and enum-style parameter checks shared by the dashboard services.
"""

import re
import logging
from typing import Iterable

from kco_finops.core.exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

# Dataset ids are generated as uuid4 hex; accept any url-safe token of sane length
DATASET_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{3,64}$')


def validate_dataset_id(dataset_id: str) -> str:
    """
    Validate a dataset identifier.

    Raises:
        InvalidParameterError: If the id format is invalid
    """
    if not dataset_id or not DATASET_ID_PATTERN.match(dataset_id):
        logger.warning(f"Invalid dataset_id format rejected: {dataset_id[:64] if dataset_id else 'None'}")
        raise InvalidParameterError("dataset_id", dataset_id)
    return dataset_id


def validate_choice(parameter: str, value: str, allowed: Iterable[str]) -> str:
    """
    Check that a parameter takes one of the allowed values.

    Raises:
        InvalidParameterError: If the value is not allowed
    """
    allowed = list(allowed)
    if value not in allowed:
        raise InvalidParameterError(parameter, value, allowed)
    return value
