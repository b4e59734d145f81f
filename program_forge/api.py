"""
HTTP trigger and poll endpoints for program generation.
"""

import uuid
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from program_forge.errors import ErrorCode, ProfileValidationError, RecordNotFoundError
from program_forge.generation_store import COMPLETED, PROCESSING
from program_forge.onboarding import OnboardingProfile, error_details


class GenerateProgramRequest(BaseModel):
    userId: Optional[str] = None
    onboardingData: OnboardingProfile


def _error_response(status_code, message, code, details=None):
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "code": code,
            "details": details or [],
            "requestId": uuid.uuid4().hex,
        },
    )


def create_app(orchestrator):
    """Build the FastAPI app around a GenerationOrchestrator."""
    app = FastAPI(title="Program Forge", version="0.1.0")
    app.state.orchestrator = orchestrator

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        """Report body shape errors as 400 with the same details list as profile errors."""
        details = error_details(exc.errors(), prefix=("body", "onboardingData"))
        logger.info(f"Rejected generation request: {details}")
        return _error_response(400, "Invalid onboarding data", ErrorCode.VALIDATION_FAILED, details)

    @app.post("/programs", status_code=202)
    def create_program(req: GenerateProgramRequest, background_tasks: BackgroundTasks):
        """Store a pending record and return before generation starts."""
        profile = req.onboardingData.model_dump(by_alias=True, exclude_none=True)
        try:
            return orchestrator.create_program(
                req.userId, profile, dispatch=background_tasks.add_task
            )
        except ProfileValidationError as exc:
            logger.info(f"Rejected generation request: {exc.errors}")
            return _error_response(400, "Invalid onboarding data", ErrorCode.VALIDATION_FAILED, exc.errors)

    @app.get("/programs/{program_id}")
    def get_program(program_id: str):
        try:
            return orchestrator.get_program(program_id)
        except RecordNotFoundError:
            return _error_response(404, "Program not found", ErrorCode.NOT_FOUND)

    @app.post("/programs/{program_id}/generate")
    def trigger_generation(program_id: str, background_tasks: BackgroundTasks):
        try:
            outcome = orchestrator.trigger_generation(program_id, dispatch=background_tasks.add_task)
        except RecordNotFoundError:
            return _error_response(404, "Program not found", ErrorCode.NOT_FOUND)

        if outcome["accepted"]:
            return JSONResponse(status_code=202, content=outcome)
        if outcome["status"] == COMPLETED:
            return JSONResponse(
                status_code=200,
                content={**outcome, "message": "Program already generated"},
            )
        if outcome["status"] == PROCESSING:
            return _error_response(409, "Program generation already in progress", ErrorCode.CONFLICT)
        return _error_response(
            409, "Program generation failed; submit a new request", ErrorCode.CONFLICT
        )

    return app
