# response models for the task routes

from pydantic import BaseModel

class TaskAcceptedResponse(BaseModel):
    accepted: bool
    task: str
    model: str

class TaskStopResponse(BaseModel):
    stop_requested: bool
    message: str
