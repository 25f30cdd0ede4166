"""
Services module initialization.
"""

from bulk_export.services.completion_service import CompletionAggregator
from bulk_export.services.dispatch_service import CeleryWorkQueue, WorkDispatcher, WorkQueue
from bulk_export.services.export_job_service import ExportJobService
from bulk_export.services.export_repository import JobRepository, PopulationRepository
from bulk_export.services.job_status_service import JobStatusService, derive_effective_status
from bulk_export.services.population_service import PopulationPartitioner
from bulk_export.services.unit_processor import UnitProcessor

__all__ = [
    "CompletionAggregator",
    "CeleryWorkQueue",
    "WorkDispatcher",
    "WorkQueue",
    "ExportJobService",
    "JobRepository",
    "PopulationRepository",
    "JobStatusService",
    "derive_effective_status",
    "PopulationPartitioner",
    "UnitProcessor",
]
