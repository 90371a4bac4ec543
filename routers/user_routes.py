# routers/user_routes.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models.user import User

router = APIRouter()


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    currency: str = Field(default="USD", max_length=8)


@router.post("/users")
def create_user(body: UserCreate, db: Session = Depends(get_db)):
    user = User(email=body.email.strip().lower(), currency=body.currency.upper())
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    db.refresh(user)
    return {"id": user.id, "email": user.email, "currency": user.currency}


@router.get("/users/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"id": user.id, "email": user.email, "currency": user.currency}
