"""Orchestration layer for coordinating acquisition components."""
from propacq.orchestration.batch import BatchProcessor, BatchOptions
from propacq.orchestration.coordinator import (
    AcquisitionCoordinator,
    AcquisitionResult,
    AcquisitionMetrics
)


__all__ = [
    "BatchProcessor",
    "BatchOptions",
    "AcquisitionCoordinator",
    "AcquisitionResult",
    "AcquisitionMetrics"
]
