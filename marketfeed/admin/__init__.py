"""Admin surface for ranking configuration and caches."""

from marketfeed.admin.models import CacheInspection, RankedSetStatus
from marketfeed.admin.service import AdminService


__all__ = ["AdminService", "CacheInspection", "RankedSetStatus"]
