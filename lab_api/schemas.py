from pydantic import BaseModel, Field
from uuid import UUID

class SpawnRequest(BaseModel):
    session_id: UUID
    lab_type: str  # Validated by LabType.from_string so unknown types get a 400, not a 422
    template_path: str  # Image reference, e.g. "europe-west9-docker.pkg.dev/proj/labs/lab:latest"

class SpawnResponseData(BaseModel):
    pod_name: str
    # Relay URL for terminal labs, LoadBalancer URL for web labs.
    # Serialized as "webshell_url", the name existing clients read.
    access_url: str = Field(alias="webshell_url")
    status: str = "RUNNING"

    class Config:
        populate_by_name = True

class SpawnResponse(BaseModel):
    success: bool = True
    data: SpawnResponseData

class StopRequest(BaseModel):
    container_id: str  # Pod name returned by /spawn

class StopResponse(BaseModel):
    status: str = "Stopped"

class StatusResponse(BaseModel):
    status: str  # Pod phase or "Unknown"
