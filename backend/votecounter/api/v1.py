"""
VoteCounter v1 API Routes
Snapshot sessions: open a photo, pick regions, train the palette, classify.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from votecounter.config import SnapshotSettings
from votecounter.schemas import (
    ClassifyResponse, ErrorResponse, ModeRequest, OpenSnapshotRequest, OpenSnapshotResponse,
    PaletteEntry, PickRequest, PickResponse, RegionModel, SnapshotState, TrainResponse
)
from votecounter.services.cache import CacheSlot
from votecounter.services.colors.classification import NotTrainedError
from votecounter.services.imaging import encode_png_base64
from votecounter.services.sessions import SnapshotNotFoundError, SnapshotRegistry, get_registry
from votecounter.services.snapshot import Snapshot
from votecounter.utils.metrics import get_metrics

router = APIRouter(prefix="/v1", tags=["Snapshots"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown snapshot id"}}


def _region_models(snapshot: Snapshot):
    return [RegionModel(**region.to_dict()) for region in snapshot.regions()]


def _state(snapshot_id: str, snapshot: Snapshot) -> SnapshotState:
    return SnapshotState(
        id=snapshot_id,
        mode=snapshot.mode,
        active_color=snapshot.active_color,
        trained=snapshot.is_trained,
        regions=_region_models(snapshot),
        picks={color: [list(p) for p in picks] for color, picks in snapshot.picks().items()},
    )


def _not_found(snapshot_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Snapshot not found: {snapshot_id}")


@router.post("/snapshots",
             responses={404: {"model": ErrorResponse, "description": "Photo not found"},
                        400: {"model": ErrorResponse, "description": "Invalid settings"}},
             response_model=OpenSnapshotResponse,
             summary="Open Snapshot",
             description="Open a photo, derive its working image and restore saved picks")
def open_snapshot(
    request: OpenSnapshotRequest,
    registry: SnapshotRegistry = Depends(get_registry)
) -> OpenSnapshotResponse:
    try:
        settings = SnapshotSettings.from_config(size_limit=request.size_limit, pick_fuzz=request.pick_fuzz)
        snapshot_id = registry.open(request.path, settings)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    snapshot = registry.get(snapshot_id)
    width, height = snapshot.size
    return OpenSnapshotResponse(id=snapshot_id, width=width, height=height, picks=len(snapshot.ledger))


@router.get("/snapshots/{snapshot_id}",
            responses=NOT_FOUND,
            response_model=SnapshotState,
            summary="Snapshot State",
            description="Mode, active class, regions and picks of a snapshot")
def get_snapshot(snapshot_id: str, registry: SnapshotRegistry = Depends(get_registry)) -> SnapshotState:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            return _state(snapshot_id, snapshot)
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)


@router.put("/snapshots/{snapshot_id}/mode",
            responses={**NOT_FOUND, 400: {"model": ErrorResponse, "description": "Empty class name"}},
            response_model=SnapshotState,
            summary="Set Mode",
            description="Train a color class, or switch to mask editing with 'mask'")
def set_mode(
    snapshot_id: str,
    request: ModeRequest,
    registry: SnapshotRegistry = Depends(get_registry)
) -> SnapshotState:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            snapshot.set_train_mode(request.mode)
            return _state(snapshot_id, snapshot)
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/snapshots/{snapshot_id}/picks",
             responses=NOT_FOUND,
             response_model=PickResponse,
             summary="Pick",
             description="Grow a region of the active class or remove the region under the point")
def pick(
    snapshot_id: str,
    request: PickRequest,
    registry: SnapshotRegistry = Depends(get_registry)
) -> PickResponse:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            changed = snapshot.handle_pick(request.x, request.y, request.action)
            return PickResponse(changed=changed, regions=_region_models(snapshot))
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)


@router.post("/snapshots/{snapshot_id}/clear",
             responses=NOT_FOUND,
             response_model=SnapshotState,
             summary="Clear Layer",
             description="Drop every region and pick of the active class")
def clear_layer(snapshot_id: str, registry: SnapshotRegistry = Depends(get_registry)) -> SnapshotState:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            snapshot.clear_layer()
            return _state(snapshot_id, snapshot)
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)


@router.post("/snapshots/{snapshot_id}/train",
             responses=NOT_FOUND,
             response_model=TrainResponse,
             summary="Train Palette",
             description="Cluster each class's region pixels into the combined palette")
def train(snapshot_id: str, registry: SnapshotRegistry = Depends(get_registry)) -> TrainResponse:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            palette = snapshot.train()
            palette_image = snapshot.cache.get(CacheSlot.PALETTE) if palette.is_trained else None
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)

    return TrainResponse(
        trained=palette.is_trained,
        entries=[PaletteEntry(**entry) for entry in palette.to_entries()],
        palette_png_b64=encode_png_base64(palette_image) if palette_image is not None else None,
    )


@router.post("/snapshots/{snapshot_id}/classify",
             responses={**NOT_FOUND, 409: {"model": ErrorResponse, "description": "Palette not trained"}},
             response_model=ClassifyResponse,
             summary="Classify",
             description="Classify every pixel against the trained palette and count blobs")
def classify(snapshot_id: str, registry: SnapshotRegistry = Depends(get_registry)) -> ClassifyResponse:
    try:
        with registry.acquire(snapshot_id) as snapshot:
            result = snapshot.classify()
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)
    except NotTrainedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return ClassifyResponse(
        **result.summary(),
        classified_png_b64=encode_png_base64(result.image),
    )


@router.delete("/snapshots/{snapshot_id}",
               responses=NOT_FOUND,
               summary="Close Snapshot",
               description="Persist the pick ledger and close the session")
def close_snapshot(snapshot_id: str, registry: SnapshotRegistry = Depends(get_registry)) -> Dict[str, Any]:
    try:
        registry.close(snapshot_id)
    except SnapshotNotFoundError:
        raise _not_found(snapshot_id)
    logger.info(f"Closed session {snapshot_id}")
    return {"status": "closed", "id": snapshot_id}


@router.get("/metrics",
            summary="Metrics",
            description="In-process counters and timing statistics")
def metrics() -> Dict[str, Any]:
    return get_metrics().get_summary()
