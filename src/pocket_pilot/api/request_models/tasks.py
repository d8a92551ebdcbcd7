# request bodies for the task routes

from pydantic import BaseModel, Field
from typing import Optional

class TaskRequest(BaseModel):
    """
    Request body for starting a task, e.g. {"task": "Open Settings and turn on Wi-Fi"}.
    model selects a model profile; the default profile is used when omitted.
    """
    task: str = Field(min_length=1, max_length=4000)
    model: Optional[str] = None
