import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studyroom.api.endpoints import health, live, sessions, users
from studyroom.core.config import settings
from studyroom.core import errors
from studyroom.db.mongo import close_mongo_connection, connect_to_mongo

load_dotenv()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("studyroom")

# 도메인 예외 -> HTTP 상태 코드
ERROR_STATUS = {
    errors.SessionNotFound: 404,
    errors.UserNotFound: 404,
    errors.NotSessionHost: 403,
    errors.NotParticipant: 403,
    errors.SessionAlreadyStarted: 409,
    errors.SessionEnded: 409,
    errors.InvalidSessionState: 409,
    errors.ActiveSessionExists: 409,
    errors.RoomCodeExhausted: 503,
    errors.StoreUnavailable: 503,
}


# [수명 주기 관리] DB 연결 및 해제
@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    logger.info("Study Room backend started (%s)", settings.ENVIRONMENT)
    yield
    await close_mongo_connection()


app = FastAPI(title="Study Room Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(errors.StudyRoomError)
async def study_room_error_handler(request: Request, exc: errors.StudyRoomError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {"code": exc.code, "detail": exc.message}
    if isinstance(exc, errors.ActiveSessionExists):
        body["session_id"] = exc.session_id
    return JSONResponse(status_code=status_code, content=body)


@app.get("/")
async def read_root():
    return {"message": "Backend is running!"}


app.include_router(health.router)
app.include_router(sessions.router)
app.include_router(users.router)
app.include_router(live.router)
