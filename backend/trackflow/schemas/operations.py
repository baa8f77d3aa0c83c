from datetime import datetime

from pydantic import BaseModel


class OperationLogOut(BaseModel):
    id: str
    operation_type: str
    user_id: str | None = None
    device_info: dict | None = None
    request_details: dict | None = None
    status_code: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
