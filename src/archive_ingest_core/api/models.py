"""Request and response bodies for the ingestion API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProcessRequest(_Body):
    document_id: str | None = Field(default=None, alias="documentId")
    archive_id: str | None = Field(default=None, alias="archiveId")
    steps: list[str] | None = None
    find_broken_only: bool = Field(default=False, alias="findBrokenOnly")
    force_data_update: bool = Field(default=False, alias="forceDataUpdate")
    process_type: str | None = Field(default=None, alias="processType")
    document_url: str | None = Field(default=None, alias="documentUrl")
    document_type: str | None = Field(default=None, alias="documentType")
    document_group: str | None = Field(default=None, alias="documentGroup")

    @property
    def is_finalize(self) -> bool:
        return self.process_type == "finalizeDocument" or self.force_data_update


class RepairRequest(_Body):
    document_id: str | None = Field(default=None, alias="documentId")
    repair_all_broken: bool = Field(default=False, alias="repairAllBroken")
    force_data_update: bool = Field(default=False, alias="forceDataUpdate")
    retry_count: int | None = Field(default=None, alias="retryCount", ge=1, le=10)


class WebhookRequest(_Body):
    document_id: str | None = Field(default=None, alias="documentId")
    status: str | None = None
    completed_steps: list[str] | None = Field(default=None, alias="completedSteps")


class BrokenDocumentsResponse(BaseModel):
    status: str = "success"
    message: str
    broken_doc_ids: list[str] = Field(serialization_alias="brokenDocIds")
    breakdown: dict[str, int] = Field(default_factory=dict)


class RepairAllResponse(BaseModel):
    status: str = "completed"
    message: str
    repaired: int
    failed: int
    documents: list[dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    database_connected: bool
