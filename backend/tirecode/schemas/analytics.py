from datetime import datetime
from typing import List

from tirecode.schemas.base import CamelModel


class SearchTypeCount(CamelModel):
    type: str
    count: int


class RecentSearch(CamelModel):
    query: str
    query_type: str
    result_found: bool
    created_at: datetime


class AnalyticsOverview(CamelModel):
    total_searches: int
    successful_searches: int
    failed_searches: int
    success_rate: str
    searches_by_type: List[SearchTypeCount]
    recent_searches: List[RecentSearch]


class TopSearch(CamelModel):
    query: str
    query_type: str
    result_found: bool
    count: int
