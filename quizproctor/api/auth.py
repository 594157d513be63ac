import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, constr
from typing import List
from sqlalchemy.orm import Session
from quizproctor.core.auth import ADMIN_ROLES, authenticate_admin, create_token
from quizproctor.core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

class Login(BaseModel):
    username: constr(min_length=1, max_length=50)
    password: constr(min_length=1)

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    roles: List[str]

@router.post("/login", response_model=TokenOut)
def login(payload: Login, db: Session = Depends(get_db)):
    user = authenticate_admin(db, payload.username, payload.password)
    if user is None:
        logger.warning(f"Failed admin login for {payload.username}")
        raise HTTPException(401, "Invalid credentials")
    logger.info(f"Admin login: {user.username}")
    return TokenOut(access_token=create_token(user.username, ADMIN_ROLES), roles=ADMIN_ROLES)
