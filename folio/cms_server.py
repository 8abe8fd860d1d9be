#!/usr/bin/env python3
"""
FOLIO: File-Based Content Management Server

A lightweight web server that lists the documents kept as plain files in a
data directory, renders markdown and text documents, serves images and
pdfs, and lets signed-in users create, edit, rename, duplicate, delete and
upload documents.
"""

import argparse
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiofiles
import uvicorn
import yaml
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from pydantic import BaseModel, Field

from cms_errors import (
    AlreadyExists,
    CmsError,
    Conflict,
    InvalidCredentials,
    InvalidInput,
    NotFound,
    TooLarge,
    Unauthenticated,
)
from cms_pages import (
    SERVER_ERROR_PAGE,
    document_body,
    edit_body,
    index_body,
    layout,
    new_document_body,
    register_body,
    rename_body,
    render_markdown,
    signin_body,
    upload_body,
)
from credential_store import CredentialStore, pwd_context
from doc_names import (
    Category,
    classify,
    is_markdown,
    is_text,
    split_extension,
    validate_new_name,
    validate_upload_name,
)
from document_store import DEFAULT_MAX_UPLOAD_SIZE, DocumentStore
from session_gate import AuthContext, Flash, SessionCodec, require_signed_in

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = "change-me-in-production"
UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB


# ============================================================================
# Configuration Models
# ============================================================================

class ServerConfig(BaseModel):
    """Server configuration"""
    host: str = "127.0.0.1"
    port: int = 8196


class StorageConfig(BaseModel):
    """Where documents and credentials live"""
    data_dir: str = "./data"
    credentials_file: str = "./users.yml"
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE


class SecurityConfig(BaseModel):
    """Security configuration"""
    secret_key: str = DEFAULT_SECRET_KEY
    session_hours: int = 24
    session_cookie: str = "folio_session"
    flash_cookie: str = "folio_flash"


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """Application configuration"""
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ============================================================================
# Global State
# ============================================================================

# Configuration, replaced by main() or by tests
config = AppConfig()


# ============================================================================
# Dependencies
# ============================================================================

def get_document_store() -> DocumentStore:
    return DocumentStore(config.storage.data_dir)


def get_credential_store() -> CredentialStore:
    return CredentialStore(config.storage.credentials_file, pwd_context)


def get_session_codec() -> SessionCodec:
    security = config.security
    return SessionCodec(
        secret_key=security.secret_key,
        session_hours=security.session_hours,
        session_cookie=security.session_cookie,
        flash_cookie=security.flash_cookie
    )


def get_auth_context(
    request: Request,
    codec: SessionCodec = Depends(get_session_codec)
) -> AuthContext:
    """Authentication state of the current request"""
    return codec.auth_context(request)


def signed_in_user(auth: AuthContext = Depends(get_auth_context)) -> str:
    """Gate for mutating routes; anonymous requests never reach the handler"""
    return require_signed_in(auth)


# ============================================================================
# Utility Functions
# ============================================================================

def parse_size(size_str: str) -> int:
    """Parse size string (e.g., '1.5MB') to bytes"""
    units = {'KB': 1000, 'MB': 1000**2, 'GB': 1000**3, 'B': 1}
    size_str = size_str.upper().strip()

    for unit, multiplier in units.items():
        if size_str.endswith(unit):
            try:
                number = float(size_str[:-len(unit)])
                return int(number * multiplier)
            except ValueError:
                pass

    try:
        return int(size_str)
    except ValueError:
        raise ValueError(f"Invalid size format: {size_str}")


def render_page(
    request: Request,
    codec: SessionCodec,
    store: DocumentStore,
    auth: AuthContext,
    title: str,
    body: str,
    status_code: int = 200,
    flash: Optional[Flash] = None
) -> HTMLResponse:
    """
    Render a page inside the layout.

    Without an explicit flash, the pending flash cookie is shown and then
    cleared on this response.
    """
    consume = flash is None and codec.has_flash(request)
    if flash is None:
        flash = codec.read_flash(request)

    response = HTMLResponse(
        content=layout(title, body, store.list_documents(), auth, flash),
        status_code=status_code
    )
    if consume:
        codec.clear_flash(response)
    return response


def error_flash(error: CmsError) -> Flash:
    return Flash(kind="error", message=error.message)


def redirect_with_flash(
    codec: SessionCodec,
    kind: str,
    message: str,
    url: str = "/"
) -> RedirectResponse:
    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    codec.set_flash(response, kind, message)
    return response


async def receive_upload(upload: UploadFile) -> Path:
    """Stream an uploaded file into a temporary file"""
    fd, tmp_name = tempfile.mkstemp(prefix="folio-upload-")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        async with aiofiles.open(tmp_path, 'wb') as f:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                await f.write(chunk)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path


# ============================================================================
# FastAPI Application
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown"""
    Path(config.storage.data_dir).mkdir(parents=True, exist_ok=True)
    logger.info(f"Serving documents from {config.storage.data_dir}")
    yield


app = FastAPI(
    title="FOLIO - File-Based Content Management Server",
    description="Create, edit, rename, duplicate, delete and upload documents stored as plain files",
    version="1.0.0",
    lifespan=lifespan
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(Unauthenticated)
async def handle_unauthenticated(request: Request, exc: Unauthenticated):
    logger.warning(f"Rejected anonymous {request.method} {request.url.path}")
    return redirect_with_flash(get_session_codec(), "error", exc.message)


@app.exception_handler(NotFound)
async def handle_not_found(request: Request, exc: NotFound):
    return redirect_with_flash(get_session_codec(), "error", exc.message)


@app.exception_handler(CmsError)
async def handle_cms_error(request: Request, exc: CmsError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return redirect_with_flash(get_session_codec(), "error", exc.message)


@app.exception_handler(OSError)
async def handle_os_error(request: Request, exc: OSError):
    logger.exception(f"Filesystem error during {request.method} {request.url.path}", exc_info=exc)
    return HTMLResponse(content=SERVER_ERROR_PAGE, status_code=500)


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """List documents"""
    documents = store.list_documents()
    return render_page(request, codec, store, auth, "Documents", index_body(documents, auth))


@app.get("/new", response_class=HTMLResponse)
async def new_document_form(
    request: Request,
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    return render_page(request, codec, store, auth, "New document", new_document_body())


@app.post("/create")
async def create_document(
    request: Request,
    file_name: str = Form(""),
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Create an empty text document"""
    try:
        stored = await store.create(validate_new_name(file_name))
    except (InvalidInput, AlreadyExists) as e:
        return render_page(
            request, codec, store, auth, "New document",
            new_document_body(file_name.strip()),
            status_code=e.status_code,
            flash=error_flash(e)
        )

    logger.info(f"{username} created {stored}")
    return redirect_with_flash(codec, "success", f"{stored} was created.")


@app.get("/upload", response_class=HTMLResponse)
async def upload_form(
    request: Request,
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    return render_page(
        request, codec, store, auth, "Upload",
        upload_body(config.storage.max_upload_size)
    )


@app.post("/upload")
async def upload_document(
    request: Request,
    fileupload: Optional[UploadFile] = File(None),
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Store an uploaded text, image or pdf file"""
    try:
        stored_name = validate_upload_name(fileupload.filename if fileupload else None)
        if store.exists(stored_name):
            raise AlreadyExists(stored_name, "That file already exists.")

        tmp_path = await receive_upload(fileupload)
        try:
            stored = await store.move_uploaded(
                tmp_path, stored_name, config.storage.max_upload_size
            )
        finally:
            tmp_path.unlink(missing_ok=True)
    except (InvalidInput, AlreadyExists, TooLarge) as e:
        logger.warning(f"Upload by {username} rejected: {e.message}")
        return render_page(
            request, codec, store, auth, "Upload",
            upload_body(config.storage.max_upload_size),
            status_code=e.status_code,
            flash=error_flash(e)
        )

    logger.info(f"{username} uploaded {stored}")
    return redirect_with_flash(codec, "success", f"{stored} was uploaded.")


@app.get("/users/signin", response_class=HTMLResponse)
async def signin_form(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    return render_page(request, codec, store, auth, "Sign in", signin_body())


@app.post("/users/signin")
async def signin(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    credentials: CredentialStore = Depends(get_credential_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Authenticate and start a session"""
    username = username.strip()
    password = password.strip()
    if not credentials.verify(username, password):
        logger.warning(f"Failed sign-in for {username!r}")
        error = InvalidCredentials()
        return render_page(
            request, codec, store, auth, "Sign in",
            signin_body(username),
            status_code=error.status_code,
            flash=error_flash(error)
        )

    logger.info(f"{username} signed in")
    response = redirect_with_flash(codec, "success", "Welcome!")
    codec.sign_in(response, username)
    return response


@app.post("/users/signout")
async def signout(
    auth: AuthContext = Depends(get_auth_context),
    codec: SessionCodec = Depends(get_session_codec)
):
    if auth.signed_in:
        logger.info(f"{auth.username} signed out")
    response = redirect_with_flash(codec, "success", "You have been signed out.")
    codec.sign_out(response)
    return response


@app.get("/users/register", response_class=HTMLResponse)
async def register_form(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    return render_page(request, codec, store, auth, "Register", register_body())


@app.post("/users/register")
async def register(
    request: Request,
    new_username: str = Form(""),
    new_password: str = Form(""),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    credentials: CredentialStore = Depends(get_credential_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Create an account and sign it in"""
    username = new_username.strip()
    password = new_password.strip()
    try:
        if not username or not password:
            raise InvalidInput("Please enter a valid username and password.")
        credentials.append(username, password)
    except (InvalidInput, Conflict) as e:
        return render_page(
            request, codec, store, auth, "Register",
            register_body(username),
            status_code=e.status_code,
            flash=error_flash(e)
        )

    response = redirect_with_flash(
        codec, "success", f"Account successfully registered. Welcome, {username}!"
    )
    codec.sign_in(response, username)
    return response


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    # Browsers ask for this on every page; it is not a document
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# NOTE: the /{name}/... routes must come after the fixed routes above
# because FastAPI matches routes in order and /{name} would match /new etc.

@app.get("/{name}/edit", response_class=HTMLResponse)
async def edit_form(
    request: Request,
    name: str,
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    content = await store.read(name)
    if not is_text(name):
        raise InvalidInput(f"{name} cannot be edited.")
    return render_page(
        request, codec, store, auth, f"Edit {name}",
        edit_body(name, content.decode('utf-8', errors='replace'))
    )


@app.get("/{name}/rename", response_class=HTMLResponse)
async def rename_form(
    request: Request,
    name: str,
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    if not store.exists(name):
        raise NotFound(name)
    return render_page(request, codec, store, auth, f"Rename {name}", rename_body(name))


@app.post("/{name}/rename")
async def rename_document(
    request: Request,
    name: str,
    rename: str = Form(""),
    username: str = Depends(signed_in_user),
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """
    Rename a document.

    A new name without an extension keeps the old one. Either way the
    result must be a text document name.
    """
    if not store.exists(name):
        raise NotFound(name)

    new_name = rename.strip()
    try:
        if not new_name:
            raise InvalidInput("A name is required.")
        if not split_extension(new_name)[1]:
            new_name += split_extension(name)[1]
        stored = await store.rename(name, validate_new_name(new_name))
    except (InvalidInput, AlreadyExists) as e:
        return render_page(
            request, codec, store, auth, f"Rename {name}",
            rename_body(name, rename.strip()),
            status_code=e.status_code,
            flash=error_flash(e)
        )

    logger.info(f"{username} renamed {name} to {stored}")
    return redirect_with_flash(codec, "success", f"{name} was renamed to {stored}.")


@app.post("/{name}/duplicate")
async def duplicate_document(
    name: str,
    username: str = Depends(signed_in_user),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    copy_name = await store.duplicate(name)
    logger.info(f"{username} duplicated {name} as {copy_name}")
    return redirect_with_flash(codec, "success", f"Duplication successful: {copy_name} created.")


@app.post("/{name}/delete")
async def delete_document(
    request: Request,
    name: str,
    username: str = Depends(signed_in_user),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Delete a document; XHR callers get 204 instead of a redirect"""
    await store.delete(name)
    logger.info(f"{username} deleted {name}")

    if request.headers.get("X-Requested-With") == "XMLHttpRequest":
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return redirect_with_flash(codec, "success", f"{name} has been deleted.")


@app.get("/{name}")
async def view_document(
    request: Request,
    name: str,
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Render markdown, serve text, images and pdfs as-is"""
    content = await store.read(name)
    category, content_type = classify(name)

    if category is Category.UNKNOWN:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    if is_markdown(name):
        html = render_markdown(content.decode('utf-8', errors='replace'))
        return render_page(request, codec, store, auth, name, document_body(html))

    return Response(content=content, media_type=content_type)


@app.post("/{name}")
async def save_document(
    name: str,
    content: str = Form(""),
    username: str = Depends(signed_in_user),
    store: DocumentStore = Depends(get_document_store),
    codec: SessionCodec = Depends(get_session_codec)
):
    """Save edited content"""
    if not store.exists(name):
        raise NotFound(name)
    if not is_text(name):
        raise InvalidInput(f"{name} cannot be edited.")

    await store.write(name, content.encode('utf-8'))
    logger.info(f"{username} updated {name}")
    return redirect_with_flash(codec, "success", f"{name} has been updated.")


# ============================================================================
# CLI and Main
# ============================================================================

def load_config_from_file(config_file: str) -> AppConfig:
    """Load configuration from YAML file"""
    with open(config_file, 'r') as f:
        config_dict = yaml.safe_load(f) or {}
    return AppConfig(**config_dict)


def configure_logging(logging_config: LoggingConfig):
    """Apply the configured level and optional log file"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, logging_config.level.upper()))
    if logging_config.file:
        handler = logging.FileHandler(logging_config.file)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root.addHandler(handler)


def main():
    """Main entry point"""
    global config

    parser = argparse.ArgumentParser(
        description="FOLIO - File-Based Content Management Server"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file (YAML)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8196,
        help="Port to bind to (default: 8196)"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default="./data",
        help="Directory holding the documents (default: ./data)"
    )
    parser.add_argument(
        "--credentials-file",
        type=str,
        default="./users.yml",
        help="YAML file of usernames and password hashes (default: ./users.yml)"
    )
    parser.add_argument(
        "--max-upload-size",
        type=str,
        default="1.5MB",
        help="Uploads of this size or larger are rejected (default: 1.5MB)"
    )
    parser.add_argument(
        "--secret-key",
        type=str,
        default=os.environ.get("FOLIO_SECRET_KEY", DEFAULT_SECRET_KEY),
        help="Key used to sign session cookies (default: $FOLIO_SECRET_KEY)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    # Load configuration
    if args.config:
        config = load_config_from_file(args.config)
    else:
        # Use command line arguments
        config.server.host = args.host
        config.server.port = args.port
        config.storage.data_dir = args.data_dir
        config.storage.credentials_file = args.credentials_file
        config.storage.max_upload_size = parse_size(args.max_upload_size)
        config.security.secret_key = args.secret_key
        config.logging.level = args.log_level

    configure_logging(config.logging)

    if config.security.secret_key == DEFAULT_SECRET_KEY:
        logger.warning("Using the default secret key; set --secret-key or FOLIO_SECRET_KEY")

    # Log configuration
    logger.info("=" * 60)
    logger.info("FOLIO - File-Based Content Management Server")
    logger.info("=" * 60)
    logger.info(f"Host: {config.server.host}")
    logger.info(f"Port: {config.server.port}")
    logger.info(f"Data Directory: {config.storage.data_dir}")
    logger.info(f"Credentials File: {config.storage.credentials_file}")
    logger.info(f"Max Upload Size: {config.storage.max_upload_size} bytes")
    logger.info("=" * 60)
    logger.info(f"Server running at http://{config.server.host}:{config.server.port}")
    logger.info("Press Ctrl+C to stop")
    logger.info("=" * 60)

    # Run server
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower()
    )


if __name__ == "__main__":
    main()
