import json
import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..auth import CurrentUser, get_current_admin_user, get_current_user
from ..config import settings
from ..database import get_db, get_redis_client

logger = logging.getLogger("property_service")

router = APIRouter(prefix="/properties", tags=["Properties"])

LIST_CACHE_PREFIX = "all_properties"


def _property_key(property_id: int) -> str:
    return f"property_{property_id}"


def _cache_get(redis_client: Redis, key: str):
    try:
        cached = redis_client.get(key)
    except RedisError as e:
        logger.error(f"Failed to read cache key {key}: {e}")
        return None
    if cached:
        logger.debug(f"Cache hit for {key}")
        return json.loads(cached)
    return None


def _cache_set(redis_client: Redis, key: str, value) -> None:
    try:
        redis_client.set(key, json.dumps(value, default=str), ex=settings.PROPERTY_CACHE_TTL)
    except RedisError as e:
        logger.error(f"Failed to write cache key {key}: {e}")


def _invalidate(redis_client: Redis, property_id: int = None) -> None:
    try:
        if property_id is not None:
            redis_client.delete(_property_key(property_id))
        for key in redis_client.scan_iter(match=f"{LIST_CACHE_PREFIX}:*"):
            redis_client.delete(key)
        logger.info(f"Invalidated property cache (property {property_id})")
    except RedisError as e:
        logger.error(f"Failed to invalidate Redis cache: {e}")


def _get_owned_property(db: Session, property_id: int, user: CurrentUser):
    db_property = crud.get_property(db, property_id=property_id)
    if db_property is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    if db_property.owner_id != user.id and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
    return db_property


@router.post("/", response_model=schemas.PropertyRead, status_code=status.HTTP_201_CREATED)
def create_property(
        property: schemas.PropertyCreate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        db: Session = Depends(get_db),
        redis_client: Redis = Depends(get_redis_client),
):
    db_property = crud.create_property(db=db, property=property, owner_id=current_user.id)
    # When a new property is added, invalidate the list cache.
    _invalidate(redis_client)
    return db_property


@router.get("/", response_model=List[schemas.PropertyRead])
def read_properties(
        skip: int = 0,
        limit: int = 100,
        db: Session = Depends(get_db),
        redis_client: Redis = Depends(get_redis_client),
):
    """
    Properties open for booking. Served from cache when possible.
    """
    cache_key = f"{LIST_CACHE_PREFIX}:{skip}:{limit}"
    cached_properties = _cache_get(redis_client, cache_key)
    if cached_properties is not None:
        return cached_properties

    properties = crud.get_properties(db, skip=skip, limit=limit, available_only=True)
    properties_list = [schemas.PropertyRead.model_validate(p).model_dump(mode="json") for p in properties]
    _cache_set(redis_client, cache_key, properties_list)
    return properties_list


@router.get("/all", response_model=List[schemas.PropertyRead])
def read_all_properties(
        current_user: Annotated[CurrentUser, Depends(get_current_admin_user)],
        skip: int = 0,
        limit: int = 100,
        db: Session = Depends(get_db),
):
    return crud.get_properties(db, skip=skip, limit=limit)


@router.get("/my", response_model=List[schemas.PropertyRead])
def read_my_properties(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        skip: int = 0,
        limit: int = 100,
        db: Session = Depends(get_db),
):
    return crud.get_properties_by_owner(db, owner_id=current_user.id, skip=skip, limit=limit)


@router.get("/{property_id}", response_model=schemas.PropertyRead)
def read_property(
        property_id: int,
        db: Session = Depends(get_db),
        redis_client: Redis = Depends(get_redis_client),
):
    cache_key = _property_key(property_id)
    cached_property = _cache_get(redis_client, cache_key)
    if cached_property is not None:
        return cached_property

    db_property = crud.get_property(db, property_id=property_id)
    if db_property is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    property_data = schemas.PropertyRead.model_validate(db_property).model_dump(mode="json")
    _cache_set(redis_client, cache_key, property_data)
    return property_data


@router.put("/{property_id}", response_model=schemas.PropertyRead)
def update_property(
        property_id: int,
        changes: schemas.PropertyUpdate,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        db: Session = Depends(get_db),
        redis_client: Redis = Depends(get_redis_client),
):
    db_property = _get_owned_property(db, property_id, current_user)
    db_property = crud.update_property(db, db_property, changes)
    _invalidate(redis_client, property_id)
    return db_property


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(
        property_id: int,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        db: Session = Depends(get_db),
        redis_client: Redis = Depends(get_redis_client),
):
    db_property = _get_owned_property(db, property_id, current_user)
    crud.delete_property(db, db_property)
    _invalidate(redis_client, property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
