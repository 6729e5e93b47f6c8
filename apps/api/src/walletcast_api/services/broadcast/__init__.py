"""Broadcast segmentation and dispatch engine."""

from .birthday import BirthdayJob, BirthdayOutcome, BirthdayRunResult  # noqa: F401
from .dispatch import BroadcastResult, DispatchEngine, SegmentPreview  # noqa: F401
from .errors import (  # noqa: F401
    BroadcastError,
    BroadcastSystemError,
    BroadcastValidationError,
    ProgramNotFoundError,
    ProtocolMismatchError,
    UnknownSegmentError,
)
from .predicates import PredicateEvaluator, filter_records  # noqa: F401
from .segments import SegmentConfig, SegmentDefinition, SegmentEnum  # noqa: F401
from .service import BroadcastService, SegmentCatalog  # noqa: F401
