"""Connection profile CRUD. Passwords are accepted but never returned."""
from typing import List, Optional

from fastapi import APIRouter, Depends

from cdcsync.api.deps import get_config_store
from cdcsync.models.connection import ConnectionCreate, ConnectionRead, DbType
from cdcsync.stores.config_store import ConfigStore

router = APIRouter()


@router.post("", response_model=dict)
def save_connection(
    req: ConnectionCreate, store: ConfigStore = Depends(get_config_store)
):
    return {"id": store.save(req)}


@router.get("", response_model=List[ConnectionRead])
def list_connections(
    db_type: Optional[DbType] = None,
    store: ConfigStore = Depends(get_config_store),
):
    return [
        ConnectionRead.model_validate(profile, from_attributes=True)
        for profile in store.list(db_type)
    ]


@router.put("/{config_id}")
def update_connection(
    config_id: int,
    req: ConnectionCreate,
    store: ConfigStore = Depends(get_config_store),
):
    store.update(config_id, req)
    return {"success": True}


@router.delete("/{config_id}")
def delete_connection(config_id: int, store: ConfigStore = Depends(get_config_store)):
    store.delete(config_id)
    return {"success": True}
