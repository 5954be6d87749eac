"""
Assignment Balancer
===================

Least-loaded owner selection for new and escalated tickets.

Category exposure is a ranking key only: a staff member with no tickets in
the category is still eligible, just ranked by that category's count (zero).
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ticketing_core.sla.domain.entities import StaffCandidate


def category_key(category_id: Optional[str], subcategory_id: Optional[str] = None) -> Optional[str]:
    """Key under which per-category open ticket counts are reported."""
    if category_id is None:
        return None
    return f"{category_id}/{subcategory_id or ''}"


class AssignmentBalancer:
    """Pure, deterministic selection over StaffCandidate projections."""

    @staticmethod
    def _sort_key(candidate: StaffCandidate, key: Optional[str]) -> Tuple[int, datetime, str]:
        return (candidate.load_for(key), candidate.created_at, candidate.id)

    def rank(
        self,
        candidates: Iterable[StaffCandidate],
        category: Optional[str] = None
    ) -> List[StaffCandidate]:
        """Active candidates, least loaded first, oldest account breaking ties."""
        active = [c for c in candidates if c.active]
        return sorted(active, key=lambda c: self._sort_key(c, category))

    def select_assignee(
        self,
        candidates: Iterable[StaffCandidate],
        category: Optional[str] = None
    ) -> Optional[str]:
        """Id of the best candidate, or None when nobody is eligible."""
        ranked = self.rank(candidates, category)
        return ranked[0].id if ranked else None
