"""
Shared helpers for repositories that persist a list of records in one blob.
"""

import logging
from typing import List, Type, TypeVar
from pydantic import ValidationError
from sqlmodel import SQLModel

from repositories.state_repository import StateRepository

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=SQLModel)


def load_records(key: str, model: Type[RecordT]) -> List[RecordT]:
    """Decode a list blob, skipping entries that fail validation."""
    data = StateRepository.load(key)
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning(f"State blob '{key}' is not a list, ignoring it")
        return []

    records = []
    for entry in data:
        try:
            records.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {model.__name__} in '{key}': {e}")
    return records


def save_records(key: str, records: List[SQLModel]) -> None:
    """Rewrite a list blob."""
    StateRepository.save(key, [r.model_dump(mode="json") for r in records])
