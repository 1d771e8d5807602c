"""
Sequential reference numbers (PR-2025-004, FND-KCAA-2025-012).

A reference is the next number after the highest one already stored, so
two concurrent requests can compute the same value. The unique
constraint on `reference_number` decides the race: the loser's insert
fails and is retried with a freshly computed reference.
"""
import logging
from typing import Callable, Type

from django.db import IntegrityError, models, transaction

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 5


def next_sequence(model: Type[models.Model], prefix: str, width: int = 3) -> str:
    """`prefix` followed by one more than the highest numeric suffix stored under it."""
    sequences = [
        int(ref[len(prefix):])
        for ref in model.objects.filter(reference_number__startswith=prefix).values_list('reference_number', flat=True)
        if ref[len(prefix):].isdigit()
    ]
    return f"{prefix}{max(sequences, default=0) + 1:0{width}d}"


def create_with_reference(model: Type[models.Model], generate: Callable[[], str], **fields) -> models.Model:
    """
    Create a `model` row numbered by `generate()`. Only a clash on the
    reference itself is retried; any other integrity error propagates.
    """
    for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
        reference = generate()
        try:
            with transaction.atomic():
                return model.objects.create(reference_number=reference, **fields)
        except IntegrityError:
            if attempt == MAX_REFERENCE_ATTEMPTS or not model.objects.filter(reference_number=reference).exists():
                raise
            logger.warning(f"{model.__name__} reference {reference} taken concurrently, retrying ({attempt})")
