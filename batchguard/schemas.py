from pydantic import BaseModel, Field


class BatchSwitchRequest(BaseModel):
    batch_id: int = Field(gt=0)


class SuspendUserRequest(BaseModel):
    reason: str = Field(default='', max_length=500)


class UnsuspendUserRequest(BaseModel):
    batch_id: int = Field(gt=0)
