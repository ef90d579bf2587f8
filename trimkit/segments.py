"""Ordered collection of user-defined trim ranges."""

import uuid
from enum import Enum

from trimkit.models import Segment
from trimkit.timecode import ParseError, parse_timestamp


class ValidationErrorKind(str, Enum):
    INVALID_FORMAT = "invalid_format"
    RANGE_ORDER = "range_order"


class ValidationError(ValueError):
    """Raised when a segment cannot be added. The set is left unchanged."""

    def __init__(self, kind: ValidationErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class SegmentSet:
    """Segments in insertion order; that order is the trim and merge order.

    Overlapping segments are allowed. Only start < end is enforced.
    """

    def __init__(self) -> None:
        self._segments: list[Segment] = []

    def add(self, start_text: str, end_text: str) -> Segment:
        try:
            start = parse_timestamp(start_text)
            end = parse_timestamp(end_text)
        except ParseError as e:
            raise ValidationError(
                ValidationErrorKind.INVALID_FORMAT, "Invalid time format. Use HH:MM:SS"
            ) from e

        if start >= end:
            raise ValidationError(
                ValidationErrorKind.RANGE_ORDER, "Start time must be before End time"
            )

        segment = Segment(id=uuid.uuid4().hex[:12], start=start, end=end)
        self._segments.append(segment)
        return segment

    def remove(self, segment_id: str) -> None:
        self._segments = [s for s in self._segments if s.id != segment_id]

    def clear(self) -> None:
        self._segments = []

    def list(self) -> tuple[Segment, ...]:
        return tuple(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self):
        return iter(tuple(self._segments))
