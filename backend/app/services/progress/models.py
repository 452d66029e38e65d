from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class FileError(BaseModel):
    file: str
    error: str


class BatchStatus(BaseModel):
    batch_id: str
    total: int
    processed: int = 0
    completed: bool = False
    errors: List[FileError] = Field(default_factory=list)
    failed: bool = False          # terminal batch failure (no archive)
    error: Optional[str] = None
    created_at: Optional[datetime] = None
