"""
Animals router (user-scoped CRUD).
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from .. import crud
from ..auth import get_current_user, get_db
from ..models import Animal, LifetimeSlot
from ..schemas import AnimalIn, AnimalOut, AnimalUpdateIn

router = APIRouter()


def _to_out(animal: Animal, slots: List[LifetimeSlot]) -> AnimalOut:
    out = AnimalOut.model_validate(animal)
    out.life_stage = crud.life_stage_code(slots, animal.birth_date)
    return out


@router.get("", response_model=List[AnimalOut])
def list_animals(response: Response, q: Optional[str] = None, db=Depends(get_db), user=Depends(get_current_user)):
    animals = crud.list_animals(db, user.id, q=q)
    slots = crud.list_lifetime_slots(db)
    response.headers["x-returned-items"] = str(len(animals))
    return [_to_out(a, slots) for a in animals]


@router.post("", response_model=AnimalOut, status_code=201)
def create_animal(payload: AnimalIn, db=Depends(get_db), user=Depends(get_current_user)):
    animal = crud.create_animal(db, user.id, payload.model_dump())
    return _to_out(animal, crud.list_lifetime_slots(db))


@router.get("/{animal_id}", response_model=AnimalOut)
def get_animal(animal_id: int, db=Depends(get_db), user=Depends(get_current_user)):
    animal = crud.get_animal(db, user.id, animal_id)
    return _to_out(animal, crud.list_lifetime_slots(db))


@router.put("/{animal_id}", response_model=AnimalOut)
def update_animal(animal_id: int, payload: AnimalUpdateIn, db=Depends(get_db), user=Depends(get_current_user)):
    animal = crud.update_animal(db, user.id, animal_id, payload.model_dump(exclude_unset=True))
    return _to_out(animal, crud.list_lifetime_slots(db))


@router.delete("/{animal_id}")
def delete_animal(animal_id: int, db=Depends(get_db), user=Depends(get_current_user)):
    crud.delete_animal(db, user.id, animal_id)
    return {"ok": True}
