from sqlmodel import SQLModel, Field
from typing import Optional, List
from enum import Enum

class ExportState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RENDERING = "rendering"
    FALLBACK = "fallback"

class ExportOptions(SQLModel):
    include_header: bool = True
    include_birth_info: bool = True
    include_metadata: bool = True
    file_name: Optional[str] = None

class ExportedFile(SQLModel):
    filename: str
    media_type: str
    content: bytes
    used_fallback: bool = False

class BatchExportRequest(SQLModel):
    report_ids: List[str] = Field(..., min_length=1)
    options: ExportOptions = Field(default_factory=ExportOptions)
