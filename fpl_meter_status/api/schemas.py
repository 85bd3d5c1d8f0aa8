from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fpl_meter_status.jobs.models import JobStatus


class PortalCredentials(BaseModel):
    """Missing values are rejected by the submission validator with a 400, not here"""

    username: Optional[str] = None
    password: Optional[str] = None
    tin: Optional[str] = None


class LookupRequest(PortalCredentials):
    model_config = ConfigDict(extra="forbid")

    address: Optional[str] = None
    unit: Optional[str] = None


class LookupResponse(BaseModel):
    address: str
    unit: Optional[str]
    meter_status: str
    property_status: str


class BatchRequest(PortalCredentials):
    """Rows either as parsed objects or as raw CSV text with a header row"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    rows: Optional[List[Dict[str, Optional[str]]]] = None
    csv_text: Optional[str] = Field(default=None, alias="csv")


class BatchSubmitResponse(BaseModel):
    job_id: str
    total: int


class JobResponse(BaseModel):
    job_id: str
    created_at: datetime
    status: JobStatus
    total: int
    processed: int


class ResultResponse(BaseModel):
    job_id: str
    row_index: int
    address: str
    unit: Optional[str]
    meter_status: Optional[str]
    property_status: Optional[str]
    error: Optional[str]
    entry_mode: Optional[str]
    created_at: datetime
    status_captured_at: Optional[datetime]


class BatchStatusResponse(BaseModel):
    job: JobResponse
    results: List[ResultResponse]
