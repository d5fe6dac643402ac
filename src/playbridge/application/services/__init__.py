"""Application services - job controllers and the song matcher."""

from playbridge.application.services.download_orchestrator import (
    DownloadOrchestrator,
    DownloadReport,
    QueueStatus,
    build_organization_plan,
    generate_report,
)
from playbridge.application.services.export_service import (
    ExportDownload,
    ExportOptions,
    ExportService,
)
from playbridge.application.services.import_service import (
    FinalizeReviewResult,
    ImportOptions,
    ImportService,
    ReviewDecision,
)
from playbridge.application.services.job_locks import JobLockRegistry
from playbridge.application.services.song_matcher import (
    MatchReport,
    MatchThresholds,
    SongMatcher,
    export_match_results_csv,
    generate_match_report,
    score_candidate,
    skip_song,
    update_match_selection,
)
from playbridge.application.services.unit_of_work import Repositories, transaction

__all__ = [
    "DownloadOrchestrator",
    "DownloadReport",
    "ExportDownload",
    "ExportOptions",
    "ExportService",
    "FinalizeReviewResult",
    "ImportOptions",
    "ImportService",
    "JobLockRegistry",
    "MatchReport",
    "MatchThresholds",
    "QueueStatus",
    "Repositories",
    "ReviewDecision",
    "SongMatcher",
    "build_organization_plan",
    "export_match_results_csv",
    "generate_match_report",
    "generate_report",
    "score_candidate",
    "skip_song",
    "transaction",
    "update_match_selection",
]
