import html
import mimetypes
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response

from rawhost.auth import CredentialStatus, generate_password
from rawhost.config import Settings, get_settings
from rawhost.gate import Allow, Credentials
from rawhost.logging_config import ROOT_LOGGER, get_logger, setup_logging
from rawhost.models import (
    AuthRequest,
    AuthResponse,
    CreateCodeRequest,
    CreateCodeResponse,
    FileListResponse,
    FileRecord,
    LockResponse,
    PasswordInfoResponse,
    PasswordVerifyRequest,
    PasswordVerifyResponse,
    UploadResponse,
)
from rawhost.state import AppState
from rawhost.storage import ContentMissingError
from rawhost.tasks import rotate_password, start_background_tasks, stop_background_tasks

logger = get_logger(__name__)

CODE_EXTENSION = ".txt"
CODE_FILENAME = "code.txt"

VIEW_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
<p>{size} bytes &middot; {mime_type}</p>
<pre id="content">Loading...</pre>
<script>
fetch("/api/content/{file_id}")
  .then((res) => res.text())
  .then((text) => {{ document.getElementById("content").textContent = text; }});
</script>
</body>
</html>
"""


class CredentialError(HTTPException):
    def __init__(self, status: CredentialStatus):
        super().__init__(status_code=401, detail=status.value)
        self.code = status.value


def bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.query_params.get("token") or None


def credentials_from(request: Request) -> Credentials:
    return Credentials(
        user_agent=request.headers.get("user-agent", ""),
        headers=dict(request.headers),
        token=bearer_token(request),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(ROOT_LOGGER, settings.log_level)

    state = AppState.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        state.init()
        await rotate_password(state)
        tasks = start_background_tasks(state)
        logger.info("%s started with %s access policy", settings.app_name, state.policy.name)
        yield
        await stop_background_tasks(tasks)
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.rawhost = state

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body")
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            401: "invalid",
            403: "forbidden",
            404: "not_found",
            413: "payload_too_large",
        }
        code = getattr(exc, "code", None) or code_map.get(exc.status_code, "error")
        return error_response(exc.status_code, message, code)

    def require_record(file_id: str) -> FileRecord:
        record = state.repository.get(file_id)
        if record is None:
            raise HTTPException(status_code=404, detail="file not found")
        return record

    def content_path(record: FileRecord):
        try:
            return state.storage.path_for(record.stored_name)
        except ContentMissingError as exc:
            logger.warning("Content for %s missing at %s", record.id, record.stored_name)
            raise HTTPException(status_code=404, detail="file content missing") from exc

    def resource_password() -> str | None:
        if settings.access_policy != "header_password":
            return None
        return generate_password(settings.resource_password_length)

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env, "policy": state.policy.name}

    @app.post("/upload", response_model=UploadResponse, status_code=201, response_model_exclude_none=True)
    @app.post("/api/upload", response_model=UploadResponse, status_code=201, response_model_exclude_none=True)
    def upload_file(file: UploadFile | None = File(None)):
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="file is required")

        try:
            file_id, stored_name, size = state.storage.save_upload(
                source=file,
                max_size_bytes=settings.max_upload_size_bytes,
            )
        except ValueError as exc:
            raise HTTPException(status_code=413, detail=str(exc)) from exc

        mime_type = file.content_type or mimetypes.guess_type(file.filename)[0] or "application/octet-stream"
        password = resource_password()
        record = state.repository.create_file(
            file_id=file_id,
            original_name=file.filename,
            stored_name=stored_name,
            mime_type=mime_type,
            size=size,
            access_password=password,
        )
        logger.info("Stored upload %s (%d bytes)", file_id, size)
        return UploadResponse(id=file_id, meta=record.public(), password=password)

    @app.post("/api/create", response_model=CreateCodeResponse, response_model_exclude_none=True)
    def create_code(payload: CreateCodeRequest):
        if not payload.code:
            raise HTTPException(status_code=400, detail="No code provided.")

        try:
            file_id, stored_name, size = state.storage.save_bytes(
                payload.code.encode("utf-8"),
                CODE_EXTENSION,
                max_size_bytes=settings.max_upload_size_bytes,
            )
        except ValueError as exc:
            raise HTTPException(status_code=413, detail=str(exc)) from exc

        password = resource_password()
        state.repository.create_file(
            file_id=file_id,
            original_name=CODE_FILENAME,
            stored_name=stored_name,
            mime_type="text/plain",
            size=size,
            access_password=password,
        )
        logger.info("Stored code snippet %s (%d bytes)", file_id, size)
        return CreateCodeResponse(url=f"/raw/{file_id}", id=file_id, password=password)

    @app.get("/api/files", response_model=FileListResponse)
    def list_files():
        return FileListResponse(files=[record.public() for record in state.repository.list_files()])

    @app.post("/api/toggle-lock/{file_id}", response_model=LockResponse)
    def toggle_lock(file_id: str):
        record = state.repository.toggle_lock(file_id)
        if record is None:
            raise HTTPException(status_code=404, detail="file not found")
        return LockResponse(id=file_id, locked=record.locked)

    @app.get("/raw/{file_id}")
    @app.get("/api/raw/{file_id}")
    def raw_file(file_id: str, request: Request):
        record = require_record(file_id)
        decision = state.policy.evaluate(record, credentials_from(request))
        state.policy.after_evaluate(record, decision, state.repository)

        if isinstance(decision, Allow):
            return FileResponse(path=content_path(record), media_type=record.mime_type)

        logger.debug("Raw fetch of %s denied: %s", file_id, decision.reason)
        if decision.decoy:
            return FileResponse(
                path=content_path(record),
                status_code=decision.status_code,
                media_type=record.mime_type,
            )
        return Response(
            content=decision.message,
            status_code=decision.status_code,
            media_type=decision.media_type,
        )

    @app.get("/api/content/{file_id}")
    def file_content(file_id: str):
        record = require_record(file_id)
        return FileResponse(path=content_path(record), media_type=record.mime_type)

    @app.get("/view/{file_id}", response_class=HTMLResponse)
    def view_file(file_id: str):
        record = require_record(file_id)
        return VIEW_PAGE.format(
            title=html.escape(record.original_name),
            size=record.size,
            mime_type=html.escape(record.mime_type),
            file_id=html.escape(record.id),
        )

    @app.post("/auth/{file_id}", response_model=AuthResponse)
    def authenticate(file_id: str, payload: AuthRequest):
        require_record(file_id)

        status = state.rotator.verify(payload.password)
        if status is not CredentialStatus.VALID and payload.password in settings.static_passwords:
            status = CredentialStatus.VALID
        if status is not CredentialStatus.VALID:
            raise CredentialError(status)

        session = state.sessions.create(file_id)
        return AuthResponse(token=session.token, expires_at=session.expires_at)

    @app.get("/stream/{file_id}")
    def stream_file(file_id: str, request: Request):
        status = state.sessions.check(bearer_token(request), file_id)
        if status is not CredentialStatus.VALID:
            raise CredentialError(status)

        record = require_record(file_id)
        return FileResponse(path=content_path(record), media_type=record.mime_type)

    @app.post("/api/verify-password", response_model=PasswordVerifyResponse)
    def verify_password(payload: PasswordVerifyRequest):
        status = state.rotator.verify(payload.password)
        if status is not CredentialStatus.VALID:
            raise CredentialError(status)
        return PasswordVerifyResponse(valid=True, expires_at=state.rotator.expires_at)

    @app.get("/api/password-info", response_model=PasswordInfoResponse)
    def password_info():
        return PasswordInfoResponse(expires_at=state.rotator.expires_at)

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
