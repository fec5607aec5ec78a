from typing import Optional

from av1pass.domain.models import Outcome, OutcomeKind


def size_delta_percent(original_size: int, new_size: int) -> Optional[int]:
    """Absolute size change in whole percent of the original, or None if unknown."""
    if original_size <= 0:
        return None
    return abs(original_size - new_size) * 100 // original_size


def classify(original_size: int, new_size: int) -> Outcome:
    """Compares an encode result against its original.

    An unknown original size (0) counts as shrunk so that a failed stat never
    sends a file to the stronger pass.
    """
    if original_size == 0 or new_size <= original_size:
        kind = OutcomeKind.SHRUNK
    else:
        kind = OutcomeKind.GREW
    return Outcome(kind=kind, percent=size_delta_percent(original_size, new_size))
