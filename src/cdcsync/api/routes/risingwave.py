"""RisingWave object browsing and cleanup."""
from typing import List, Optional

from fastapi import APIRouter, Depends

from cdcsync.api.deps import get_rw_manager
from cdcsync.models.rw_object import (
    BatchDropRequest,
    BatchDropResult,
    DropObjectRequest,
    RwObject,
    RwObjectKind,
)
from cdcsync.services.rw_objects import RisingWaveObjectManager

router = APIRouter()


@router.get("/schemas", response_model=List[str])
async def list_schemas(
    config_id: int, manager: RisingWaveObjectManager = Depends(get_rw_manager)
):
    return await manager.list_schemas(config_id)


@router.post("/objects/batch-drop", response_model=BatchDropResult)
async def drop_objects(
    req: BatchDropRequest, manager: RisingWaveObjectManager = Depends(get_rw_manager)
):
    return await manager.drop_objects(
        req.config_id, req.object_type, req.schema_name, req.names, req.cascade
    )


@router.get("/objects/{kind}", response_model=List[RwObject])
async def list_objects(
    kind: RwObjectKind,
    config_id: int,
    schema: Optional[str] = None,
    manager: RisingWaveObjectManager = Depends(get_rw_manager),
):
    return await manager.list_objects(config_id, kind, schema)


@router.post("/objects/{kind}/drop")
async def drop_object(
    kind: RwObjectKind,
    req: DropObjectRequest,
    manager: RisingWaveObjectManager = Depends(get_rw_manager),
):
    await manager.drop_object(req.config_id, kind, req.schema_name, req.name, req.cascade)
    return {"success": True}
