import logging
import math
import os
import sys
from pathlib import Path
from typing import Optional

from fastapi import Cookie, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
from pydantic import BaseModel
from dotenv import load_dotenv
from jose import JWTError, jwt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context
from backend.app.routes.storage import router as storage_router


load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("gallery_storage")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "galleries_db"),
    user=os.getenv("DB_USER", "gallery_user"),
    password=os.getenv("DB_PASSWORD", "gallery_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


def get_conn():
    return psycopg2.connect(**DB_CFG)


class CurrentUser(BaseModel):
    id: str


def resolve_user_from_session_token(session_token: str) -> Optional[CurrentUser]:
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return CurrentUser(id=str(subject))


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> CurrentUser:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_session_token(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


app_context.configure(
    get_conn=get_conn,
    get_current_user=get_current_user,
)

app = FastAPI(title="Gallery Storage API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(storage_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
