from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class WorkspaceFolderDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uri: StrictStr
    name: Optional[str] = None


class HandshakeDTO(BaseModel):
    """Initialize payload as far as the session cares: one workspace folder."""

    model_config = ConfigDict(from_attributes=True)

    workspace_folders: List[WorkspaceFolderDTO] = Field(min_length=1, max_length=1)


class GenerationsResponse(BaseModel):
    config: int
    registry: int


class PositionDTO(BaseModel):
    line: int
    character: int


class RangeDTO(BaseModel):
    start: PositionDTO
    end: PositionDTO


class LocationDTO(BaseModel):
    uri: str
    range: RangeDTO


class DefinitionResponseDTO(BaseModel):
    locations: List[LocationDTO] = []


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    log_level: str = "info"
    log_file: Optional[str] = None
    transport: Literal["stdio", "tcp"] = "stdio"
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
