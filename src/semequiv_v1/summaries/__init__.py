from .store import FileOperation, PathSummary, PathSummaryStore

__all__ = ["FileOperation", "PathSummary", "PathSummaryStore"]
