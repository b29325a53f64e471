"""
VoteCounter API Schemas
Pydantic models for snapshot session request/response validation.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from votecounter.services.snapshot import Mode, PickAction


class OpenSnapshotRequest(BaseModel):
    """Request to open a photo for analysis."""
    path: str = Field(..., min_length=1, description="Filesystem path of the source photo")
    size_limit: Optional[int] = Field(None, ge=16, le=4096, description="Longest side of the working image")
    pick_fuzz: Optional[float] = Field(None, ge=0.0, le=100.0, description="Flood fill tolerance in Lab units")


class OpenSnapshotResponse(BaseModel):
    """Opened snapshot session."""
    id: str = Field(..., description="Session id")
    width: int = Field(..., description="Working image width in pixels")
    height: int = Field(..., description="Working image height in pixels")
    picks: int = Field(0, description="Number of picks restored from disk")


class RegionModel(BaseModel):
    """Simplified region outline."""
    color: str
    polygon: List[List[int]] = Field(..., description="Polygon vertices as [x, y] pairs")
    bounds: List[int] = Field(..., min_length=4, max_length=4, description="Bounding box as [x, y, width, height]")


class SnapshotState(BaseModel):
    """Current editing state of a snapshot."""
    id: str
    mode: Mode
    active_color: str
    trained: bool
    regions: List[RegionModel]
    picks: Dict[str, List[List[int]]] = Field(..., description="Picks per class as [x, y] pairs")


class ModeRequest(BaseModel):
    """Switch to training a class, or to mask editing with 'mask'."""
    mode: str = Field(..., min_length=1, description="Color class name or 'mask'")


class PickRequest(BaseModel):
    """Pointer action at a working image coordinate."""
    x: int
    y: int
    action: PickAction = Field(PickAction.ADD, description="'add' grows a region, 'remove' deletes one")


class PickResponse(BaseModel):
    changed: bool = Field(..., description="Whether any region changed")
    regions: List[RegionModel]


class PaletteEntry(BaseModel):
    """One trained palette color."""
    color: str = Field(..., description="Color class the entry belongs to")
    hex: str = Field(..., pattern="^#[0-9A-Fa-f]{6}$")
    lab: List[float] = Field(..., min_length=3, max_length=3)


class TrainResponse(BaseModel):
    trained: bool
    entries: List[PaletteEntry]
    palette_png_b64: Optional[str] = Field(None, description="Base64-encoded PNG of the palette chips")


class ClassifyResponse(BaseModel):
    pixel_counts: Dict[str, int]
    unclassified: int
    blob_counts: Dict[str, int] = Field(..., description="Connected blobs per class")
    classified_png_b64: str = Field(..., description="Base64-encoded PNG of the classified image")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field("ok", description="Service health status")
    service: str = Field("votecounter", description="Service name")
    version: str = Field(..., description="Service version")
    open_snapshots: int = Field(0, description="Number of open snapshot sessions")


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str = Field(..., description="Error message")
