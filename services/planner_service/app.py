"""
FastAPI service for the study planner.

Upload a syllabus, let the extraction run in the background, build a study
plan from the extracted events and export it as ICS or as provider payloads.
The caller is identified by the ``X-User-Id`` header; authentication itself
happens in front of this service.
"""
from __future__ import annotations

import logging
import typing as t
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, File, Header, HTTPException, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from planner_store.models import User
from services.planner_service.pipeline import (
    AppContext,
    build_context,
    confirm_calendar_integration,
    create_study_plan,
    export_study_plan_ics,
    get_owned_study_plan,
    get_owned_syllabus,
    process_syllabus,
    run_background_extraction,
    study_plan_payloads,
)
from services.shared.config import Settings, configure_logging
from services.shared.errors import NotFoundError, StorageError, ValidationError
from services.shared.models import (
    CalendarIntegrationRequest,
    CalendarPayloadRequest,
    CalendarPayloadResponse,
    CourseEventResponse,
    CreateStudyPlanRequest,
    CreateStudyPlanResponse,
    CreateUserRequest,
    ExtractTextRequest,
    ScheduleUpdateRequest,
    StudyPlanResponse,
    StudySessionResponse,
    SyllabusDetailResponse,
    SyllabusResponse,
    UploadResponse,
    UserResponse,
)
from services.shared.utils import format_file_size, get_initials

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
PDF_CONTENT_TYPE = "application/pdf"


def create_app(context: t.Optional[AppContext] = None) -> FastAPI:
    """Build the app. Without a ``context`` one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize resources on startup and cleanup on shutdown."""
        ctx = context
        if ctx is None:
            settings = Settings.from_env()
            configure_logging(settings)
            ctx = build_context(settings)
        app.state.context = ctx
        logger.info("Study planner service started (storage=%s)", ctx.settings.storage_backend)

        yield

        ctx.close()
        logger.info("Study planner service stopped")

    app = FastAPI(
        title="Study Planner Service",
        description="REST API for syllabus extraction, study planning and calendar export",
        version="1.0.0",
        lifespan=lifespan,
    )
    _register_error_handlers(app)
    _register_routes(app)
    return app


# Dependencies

def get_context(request: Request) -> AppContext:
    return request.app.state.context


def current_user(
    x_user_id: int = Header(..., alias="X-User-Id"),
    context: AppContext = Depends(get_context),
) -> User:
    user = context.storage.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(StorageError)
    async def storage_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "service": "study-planner-service"}

    # Users

    @app.post("/users", response_model=UserResponse, status_code=201)
    def create_user(request: CreateUserRequest, context: AppContext = Depends(get_context)):
        user = context.storage.create_user(
            request.username,
            display_name=request.display_name,
            email=request.email,
            initials=get_initials(request.display_name or request.username),
        )
        return user

    @app.delete("/users/{user_id}", status_code=204)
    def delete_user(
        user_id: int,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """Delete the calling user together with everything they own."""
        if user.id != user_id:
            raise HTTPException(status_code=403, detail="Users can only delete themselves")
        if not context.storage.delete_user(user_id):
            raise NotFoundError("User")
        return Response(status_code=204)

    # Syllabi

    @app.post("/syllabi/upload", response_model=UploadResponse, status_code=202)
    async def upload_syllabus(
        background_tasks: BackgroundTasks,
        file: UploadFile = File(...),
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """
        Store an uploaded PDF and extract it in the background.

        Responds immediately; poll ``GET /syllabi/{id}`` for the final status.
        """
        if file.content_type != PDF_CONTENT_TYPE:
            raise ValidationError("Only PDF files are allowed", {"file": "must be a PDF"})
        content = await file.read()
        if not content:
            raise ValidationError("No file uploaded", {"file": "empty"})
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationError(
                f"File is larger than {format_file_size(MAX_UPLOAD_BYTES)}",
                {"file": "too large"},
            )

        filename = file.filename or "syllabus.pdf"
        syllabus = await run_in_threadpool(context.storage.create_syllabus, user.id, filename)
        background_tasks.add_task(run_background_extraction, context, syllabus.id, content)
        logger.info("Queued extraction of %s (%s) as syllabus %s",
                    syllabus.filename, format_file_size(len(content)), syllabus.id)
        return UploadResponse(syllabus_id=syllabus.id)

    @app.post("/syllabi/{syllabus_id}/extract", response_model=SyllabusDetailResponse)
    def extract_syllabus_text(
        syllabus_id: int,
        request: ExtractTextRequest,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """Extract events from syllabus text, e.g. text the client pulled out of the PDF itself."""
        get_owned_syllabus(context.storage, syllabus_id, user.id)
        process_syllabus(context, syllabus_id, text=request.text)
        return SyllabusDetailResponse(
            syllabus=SyllabusResponse.model_validate(context.storage.get_syllabus(syllabus_id)),
            events=[CourseEventResponse.model_validate(e) for e in context.storage.get_course_events(syllabus_id)],
        )

    @app.get("/syllabi", response_model=list[SyllabusResponse])
    def list_syllabi(user: User = Depends(current_user), context: AppContext = Depends(get_context)):
        return context.storage.get_syllabi_by_user(user.id)

    @app.get("/syllabi/{syllabus_id}", response_model=SyllabusResponse)
    def get_syllabus(syllabus_id: int, user: User = Depends(current_user),
                     context: AppContext = Depends(get_context)):
        return get_owned_syllabus(context.storage, syllabus_id, user.id)

    @app.get("/syllabi/{syllabus_id}/events", response_model=list[CourseEventResponse])
    def list_course_events(syllabus_id: int, user: User = Depends(current_user),
                           context: AppContext = Depends(get_context)):
        get_owned_syllabus(context.storage, syllabus_id, user.id)
        return context.storage.get_course_events(syllabus_id)

    @app.put("/syllabi/{syllabus_id}/schedule", response_model=SyllabusResponse)
    def update_schedule(
        syllabus_id: int,
        request: ScheduleUpdateRequest,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """Set the recurring class meeting schedule."""
        get_owned_syllabus(context.storage, syllabus_id, user.id)
        return context.storage.update_syllabus_info(syllabus_id, **request.model_dump(exclude_unset=True))

    # Study plans

    @app.post("/study-plans", response_model=CreateStudyPlanResponse, status_code=201)
    def create_plan(
        request: CreateStudyPlanRequest,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        created = create_study_plan(
            context,
            user.id,
            request.syllabus_id,
            request.title,
            request.start_date,
            request.end_date,
            sessions_per_week=request.sessions_per_week,
            hours_per_session=request.hours_per_session,
            description=request.description,
        )
        return CreateStudyPlanResponse(
            plan=StudyPlanResponse.model_validate(created.plan),
            sessions=[StudySessionResponse.model_validate(s) for s in created.sessions],
            failed_sessions=len(created.failures),
        )

    @app.get("/study-plans", response_model=list[StudyPlanResponse])
    def list_plans(user: User = Depends(current_user), context: AppContext = Depends(get_context)):
        return context.storage.get_study_plans_by_user(user.id)

    @app.get("/study-plans/{plan_id}", response_model=StudyPlanResponse)
    def get_plan(plan_id: int, user: User = Depends(current_user), context: AppContext = Depends(get_context)):
        return get_owned_study_plan(context.storage, plan_id, user.id)

    @app.get("/study-plans/{plan_id}/sessions", response_model=list[StudySessionResponse])
    def list_sessions(plan_id: int, user: User = Depends(current_user),
                      context: AppContext = Depends(get_context)):
        get_owned_study_plan(context.storage, plan_id, user.id)
        return context.storage.get_study_sessions(plan_id)

    # Calendar export

    @app.get("/study-plans/{plan_id}/export.ics")
    def export_ics(plan_id: int, user: User = Depends(current_user), context: AppContext = Depends(get_context)):
        filename, document = export_study_plan_ics(context, plan_id, user.id)
        return Response(
            content=document,
            media_type="text/calendar",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/study-plans/{plan_id}/calendar-payloads", response_model=CalendarPayloadResponse)
    def calendar_payloads(
        plan_id: int,
        request: CalendarPayloadRequest,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """Event bodies ready to send to the Google Calendar or Microsoft Graph API."""
        events = study_plan_payloads(context, plan_id, user.id, request.provider, request.timezone)
        return CalendarPayloadResponse(provider=request.provider, events=events)

    @app.post("/study-plans/{plan_id}/calendar-integration", response_model=StudyPlanResponse)
    def calendar_integration(
        plan_id: int,
        request: t.Optional[CalendarIntegrationRequest] = None,
        user: User = Depends(current_user),
        context: AppContext = Depends(get_context),
    ):
        """Record that the plan was synced to an external calendar."""
        request = request or CalendarIntegrationRequest()
        return confirm_calendar_integration(
            context,
            plan_id,
            user.id,
            calendar_event_ids=request.calendar_event_ids,
            provider=request.provider,
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
