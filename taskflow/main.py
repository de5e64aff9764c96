# taskflow/main.py
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc
from taskflow.config import settings
from taskflow.core.errors import WorkflowError
from taskflow.database import engine, init_models
from taskflow.routers import tasks, timers, notifications, notes

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("taskflow")

# Stable error kind → HTTP status; everything else stays a 400
ERROR_STATUS = {
    "NotFound": 404,
    "Forbidden": 403,
    "NotAuthorizedForTask": 403,
    "InvalidTransition": 409,
    "AlreadyAssigned": 409,
    "NoActiveTimer": 400,
    "StorageError": 503,
}


app = FastAPI(title="Taskflow - Task Workflow Engine", version="1.0")

# Include Routers
app.include_router(tasks.router)
app.include_router(timers.router)
app.include_router(notifications.router)
app.include_router(notes.router)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    status_code = ERROR_STATUS.get(exc.kind, 400)
    headers = {"Retry-After": "1"} if exc.retryable else None
    body = exc.to_dict()
    return JSONResponse(status_code=status_code, content={"detail": body.pop("message"), **body}, headers=headers)


# Create DB Tables (for demo only, use Alembic in prod)
@app.on_event("startup")
async def startup_event():
    # ignore duplicate-object errors from previous partial runs.
    try:
        await init_models(engine)
    except sa_exc.IntegrityError as e:
        msg = str(getattr(e, "orig", e))
        if "duplicate key value violates unique constraint" in msg or "already exists" in msg:
            logger.warning("Ignored duplicate DDL error during create_all: %s", msg)
        else:
            raise

@app.get("/")
def read_root():
    return {"message": "Welcome to the Taskflow backend"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("taskflow.main:app", host="0.0.0.0", port=8000, reload=True)
