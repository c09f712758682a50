"""Per-status complaint counts for the admin dashboard."""
from collections import Counter

from models import Complaint, ComplaintStatus
from utils.store import EntityStore


class StatsAggregator:
    """Counts every complaint, archived and unpublished ones included.

    The listings hide archived complaints; these totals do not.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def compute_stats(self) -> dict:
        complaints = self.store.find(Complaint)
        counts = Counter(c.status for c in complaints)
        stats = {"total": len(complaints)}
        stats.update({status.value: counts.get(status, 0) for status in ComplaintStatus})
        return stats
