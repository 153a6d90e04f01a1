"""Domain services: dual-write records, export and migration."""

from healsync.services.export_service import (
    Download,
    DownloadSink,
    ExportPipeline,
    MemoryDownloadSink,
)
from healsync.services.migration_service import (
    MigrationDriver,
    MigrationReport,
    MigrationSummary,
)
from healsync.services.record_service import PatientRecordService

__all__ = [
    "Download",
    "DownloadSink",
    "ExportPipeline",
    "MemoryDownloadSink",
    "MigrationDriver",
    "MigrationReport",
    "MigrationSummary",
    "PatientRecordService",
]
