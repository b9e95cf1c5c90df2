# main.py
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from todo_manager.api.deps import get_todo_store
from todo_manager.api.endpoints import health, todos
from todo_manager.core.config import settings
from todo_manager.core.constants import API_BASE_PATH
from todo_manager.core.logging import configure_logging
from todo_manager.db.mongo import close_mongo_connection, connect_to_mongo

load_dotenv()

logger = configure_logging(settings.LOG_LEVEL)
logger.info("Running in %s mode", settings.ENVIRONMENT)


# [Lifecycle] DB connection, collection provisioning and shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    # A collection that cannot be provisioned is fatal: let startup fail
    await get_todo_store().ensure_index()
    yield
    await close_mongo_connection()


app = FastAPI(title="Security TODO Manager", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _format_validation_errors(errors) -> str:
    parts = []
    for err in errors:
        location = ".".join(str(loc) for loc in err.get("loc", ()) if loc != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Invalid request parameters",
            "error": _format_validation_errors(exc.errors()),
        },
    )


@app.get("/")
async def read_root():
    return {"message": "Backend is running!"}


app.include_router(health.router)
app.include_router(todos.router, prefix=f"{API_BASE_PATH}/todos", tags=["todos"])


def run():
    uvicorn.run("todo_manager.main:app", reload=settings.ENVIRONMENT != "production", host="127.0.0.1", port=8000)


if __name__ == "__main__":
    run()
