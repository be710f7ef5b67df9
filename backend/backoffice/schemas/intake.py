"""Pydantic schemas for intake, override and editor endpoints."""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class IntakeRunSummary(BaseModel):
    """Run as shown in the upload card and runs table."""
    id: str
    filename: str
    uploaded_at: datetime = Field(alias="uploadedAt")
    status: str

    class Config:
        populate_by_name = True


class UploadResponse(BaseModel):
    run: IntakeRunSummary


class RunListResponse(BaseModel):
    runs: list[IntakeRunSummary] = []


class OverridePatchRequest(BaseModel):
    """Sparse patch for the object override layer."""
    patch: Optional[dict] = None


class SourceSelectRequest(BaseModel):
    intake_id: Optional[str] = Field(default=None, alias="intakeId")

    class Config:
        populate_by_name = True


class EditorSaveRequest(BaseModel):
    intake_id: Optional[str] = Field(default=None, alias="intakeId")
    patch: Optional[dict] = None

    class Config:
        populate_by_name = True


class SimulateRequest(BaseModel):
    """Development trigger for a simulated parser callback."""
    job_id: Optional[str] = Field(default=None, alias="jobId")
    ok: bool = True
    data: Optional[dict] = None

    class Config:
        populate_by_name = True


class DemoRunRequest(BaseModel):
    object_id: Optional[str] = Field(default=None, alias="objectId")
    variant: str = "apartment"

    class Config:
        populate_by_name = True
