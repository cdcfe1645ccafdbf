"""
Health records router (vaccinations, deworming, treatments).
"""
from typing import List, Optional

from fastapi import APIRouter, Depends

from .. import crud
from ..auth import get_current_user, get_db
from ..schemas import HealthRecordIn, HealthRecordOut

router = APIRouter()


@router.get("", response_model=List[HealthRecordOut])
def list_health_records(animal_id: Optional[int] = None, db=Depends(get_db), user=Depends(get_current_user)):
    return crud.list_health_records(db, user.id, animal_id=animal_id)


@router.post("", response_model=HealthRecordOut, status_code=201)
def create_health_record(payload: HealthRecordIn, db=Depends(get_db), user=Depends(get_current_user)):
    return crud.create_health_record(db, user.id, **payload.model_dump())


@router.delete("/{record_id}")
def delete_health_record(record_id: int, db=Depends(get_db), user=Depends(get_current_user)):
    crud.delete_health_record(db, user.id, record_id)
    return {"ok": True}
