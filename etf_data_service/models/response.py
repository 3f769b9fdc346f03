"""Envelope shared by every JSON route: ``{success, data, message, error, timestamp}``"""

import time
from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None
    timestamp: int = Field(default_factory=lambda: int(time.time()))

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str = "failed", data: Any = None) -> "ApiResponse":
        return cls(success=False, error=error, message=message, data=data)

    def to_response(self, status_code: int) -> JSONResponse:
        """For routes that answer with a non-200 status but keep the envelope"""
        return JSONResponse(status_code=status_code, content=self.model_dump(mode="json"))
