"""
SiteWalk - Audit Log Pydantic Schemas
"""
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Dict, List, Optional


class AuditLogResponse(BaseModel):
    id: int
    action: str
    details: Optional[str] = None
    author_id: Optional[int] = None
    author_name: str
    floorplan_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogList(BaseModel):
    """Paginated list of audit logs."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class AuditStats(BaseModel):
    """Activity summary for a period, optionally for one floorplan."""
    floorplan_id: Optional[int] = None
    total_actions: int
    actions_today: int
    active_authors: int
    by_action: Dict[str, int]          # {"MARKER_CREATE": 50, "LAYER_DELETE": 2}
    by_resource_type: Dict[str, int]   # {"marker": 52, "layer": 2}
    period_start: datetime
    period_end: datetime
