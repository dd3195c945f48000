from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from face_attendance import config
from face_attendance.errors import (
    DuplicateIdentity,
    IdentityNotFound,
    InfrastructureError,
    InvalidDescriptor,
    InvalidEnrollment,
    RecordingFailed,
)
from face_attendance.logger_helper import create_logging_middleware, setup_logger
from face_attendance.service import AttendanceService, build_service

# Global service instance
service: Optional[AttendanceService] = None


# Request/Response Models
class RegisterRequest(BaseModel):
    name: str
    email: str
    descriptor: List[float]
    reenroll: bool = False


class DescriptorRequest(BaseModel):
    descriptor: List[float]


class MarkAttendanceRequest(BaseModel):
    descriptor: List[float]
    day: Optional[date] = Field(default=None, description="Calendar date; defaults to today")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize resources on startup."""
    global service
    service = build_service()
    perf_logger.info("Service ready: database=%s threshold=%s", config.DATABASE_URL, config.MATCH_THRESHOLD)
    yield
    service = None


def get_service() -> AttendanceService:
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


perf_logger = setup_logger(config.LOG_FILE, config.LOG_LEVEL)

app = FastAPI(
    title="Face Attendance",
    description="Face-descriptor enrollment and once-per-day attendance recording",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
create_logging_middleware(app, perf_logger)


def _identity_payload(identity) -> dict:
    return {
        "id": identity.identity_id,
        "name": identity.display_name,
        "email": identity.uniqueness_key,
        "descriptor_count": len(identity.descriptors),
        "created_at": identity.created_at.isoformat(),
    }


def _unavailable(e: InfrastructureError, match_succeeded: bool = False) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        headers={"Retry-After": "1"},
        content={
            "detail": str(e),
            "operation": e.operation,
            "idempotency_key": e.idempotency_key,
            "retriable": e.retriable,
            "match_succeeded": match_succeeded,
        },
    )


@app.get("/health")
def health_check(svc: AttendanceService = Depends(get_service)):
    return {
        "status": "running",
        "threshold": svc.threshold,
        "descriptor_length": svc.descriptor_length,
        "strategy": svc.matcher.strategy.name,
        "timezone": svc.timezone_name,
    }


# Identity Endpoints

@app.post("/api/users/register", status_code=201)
def register_user(request: RegisterRequest, svc: AttendanceService = Depends(get_service)):
    """Enroll a person with a face descriptor."""
    try:
        identity = svc.enroll_identity(request.name, request.email, request.descriptor, reenroll=request.reenroll)
    except (InvalidDescriptor, InvalidEnrollment) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateIdentity as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InfrastructureError as e:
        return _unavailable(e)

    return {"success": True, "user": _identity_payload(identity)}


@app.get("/api/users")
def list_users(svc: AttendanceService = Depends(get_service)):
    """List identities eligible for matching."""
    try:
        enrolled = svc.list_identities()
    except InfrastructureError as e:
        return _unavailable(e)

    return {
        "success": True,
        "users": [
            {"id": e.identity_id, "name": e.display_name, "descriptor_count": len(e.descriptors)}
            for e in enrolled
        ],
    }


@app.put("/api/users/{identity_id}/descriptor")
def update_descriptor(identity_id: int, request: DescriptorRequest, svc: AttendanceService = Depends(get_service)):
    """Replace all enrolled descriptors of a person."""
    try:
        identity = svc.update_descriptor(identity_id, request.descriptor)
    except InvalidDescriptor as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IdentityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InfrastructureError as e:
        return _unavailable(e)

    return {"success": True, "user": _identity_payload(identity)}


@app.delete("/api/users/{identity_id}")
def remove_user(identity_id: int, svc: AttendanceService = Depends(get_service)):
    try:
        svc.remove_identity(identity_id)
    except IdentityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InfrastructureError as e:
        return _unavailable(e)

    return {"success": True, "message": f"Identity {identity_id} removed"}


# Attendance Endpoints

@app.post("/api/attendance/mark")
def mark_attendance(request: MarkAttendanceRequest, svc: AttendanceService = Depends(get_service)):
    """
    Match a probe descriptor and record today's attendance.

    No match and already-recorded are successful outcomes, not errors.
    """
    try:
        result = svc.mark_attendance(request.descriptor, request.day)
    except InvalidDescriptor as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordingFailed as e:
        return _unavailable(e, match_succeeded=True)
    except InfrastructureError as e:
        return _unavailable(e)

    match = result.match
    response = {
        "success": True,
        "outcome": result.outcome.value,
        "distance": match.distance if match.distance != float("inf") else None,
        "ambiguous": match.ambiguous,
    }
    if result.identity is not None:
        response["user"] = {"id": result.identity.identity_id, "name": result.identity.display_name}
    if result.record is not None:
        response["date"] = result.record.calendar_date.isoformat()
        response["recorded_at"] = result.record.recorded_at.isoformat()
    return response


@app.get("/api/attendance/{identity_id}")
def attendance_history(identity_id: int, svc: AttendanceService = Depends(get_service)):
    """Attendance history for a person, most recent first."""
    try:
        history = svc.get_history(identity_id)
    except IdentityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InfrastructureError as e:
        return _unavailable(e)

    return {
        "success": True,
        "attendance": [
            {
                "date": r.calendar_date.isoformat(),
                "status": r.status,
                "recorded_at": r.recorded_at.isoformat(),
            }
            for r in history
        ],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
