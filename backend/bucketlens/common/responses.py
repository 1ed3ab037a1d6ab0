from __future__ import annotations

from typing import Any, Optional

from bucketlens.common.request_context import get_request_id
from bucketlens.common.schemas import CamelModel


class ApiResponse(CamelModel):
    """Envelope shared by every JSON endpoint."""

    success: bool
    code: int
    message: str
    data: Optional[Any] = None
    request_id: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "OK") -> "ApiResponse":
        return cls(success=True, code=0, message=message, data=data, request_id=get_request_id())

    @classmethod
    def fail(
        cls,
        code: int,
        message: str,
        data: Any = None,
    ) -> "ApiResponse":
        return cls(success=False, code=code, message=message, data=data, request_id=get_request_id())
