import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from kb_discovery import settings
from kb_discovery.auth import issue_token, require_admin, require_user
from kb_discovery.backend import Backend
from kb_discovery.discovery_results import DEFAULT_LIMIT, build_answers_export, build_generated_export
from kb_discovery.entities import QuestionInput
from kb_discovery.errors import AuthError, DiscoveryError, NotFound, StorageError, ValidationError
from kb_discovery.generation import is_warning_text

logger = logging.getLogger("kb_discovery")


# --- Request bodies ---
# Fields are optional so missing values surface as our own 400 messages.

class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class CreateUserRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    newPassword: Optional[str] = None


class MappingRequest(BaseModel):
    category: Optional[str] = None
    workspaceName: Optional[str] = None


class ProductRequest(BaseModel):
    name: Optional[str] = None
    questions: List[QuestionInput] = []


class PromptsRequest(BaseModel):
    prompts: Optional[Dict[str, Any]] = None


class GenerateRequest(BaseModel):
    productId: Optional[str] = None
    customerName: str = ""
    projectName: str = ""
    answers: Dict[str, str] = {}


class AskRequest(BaseModel):
    category: Optional[str] = None
    message: Optional[str] = None


class ExportRequest(GenerateRequest):
    generatedAnswers: Optional[Dict[str, str]] = None


class CreateResultRequest(BaseModel):
    customerName: Optional[str] = None
    projectName: Optional[str] = None
    productId: Optional[str] = None
    productName: Optional[str] = None
    answers: Optional[Dict[str, str]] = None
    generatedAnswers: Optional[Dict[str, str]] = None


def get_backend(request: Request) -> Backend:
    return request.app.state.backend


def _int_or_default(raw: Optional[str], default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _product_or_404(backend: Backend, product_id: Optional[str]):
    if not product_id:
        raise ValidationError("Product is required")
    product = backend.products.get_product(product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


# -----------------------
# /api/auth
# -----------------------
auth_router = APIRouter(prefix="/api/auth")


@auth_router.post("/login")
def login(body: LoginRequest, backend: Backend = Depends(get_backend)):
    if not body.username or not body.password:
        raise ValidationError("Username and password are required")
    user = backend.users.find_by_username(body.username)
    if user is None or not backend.users.verify_password(body.password, user.password_hash):
        raise AuthError("Invalid credentials")
    token = issue_token(user.id, user.username, user.role)
    return {"token": token, "user": {"id": user.id, "username": user.username, "role": user.role}}


@auth_router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    claims: dict = Depends(require_user),
    backend: Backend = Depends(get_backend),
):
    if not body.currentPassword or not body.newPassword:
        raise ValidationError("Current password and new password are required")
    user = backend.users.find_by_id(claims.get("userId"))
    if user is None:
        raise NotFound("User not found")
    if not backend.users.verify_password(body.currentPassword, user.password_hash):
        raise AuthError("Current password is incorrect")
    backend.users.update_password(user.id, body.newPassword)
    return {"message": "Password updated successfully"}


@auth_router.get("/users", dependencies=[Depends(require_admin)])
def list_users(backend: Backend = Depends(get_backend)):
    return {"users": backend.users.list_users()}


@auth_router.post("/users", dependencies=[Depends(require_admin)])
def create_user(body: CreateUserRequest, backend: Backend = Depends(get_backend)):
    user = backend.users.create_user(body.username, body.password, body.role or "user")
    return {"user": user}


@auth_router.post("/users/{user_id}/reset-password", dependencies=[Depends(require_admin)])
def reset_password(user_id: str, body: ResetPasswordRequest, backend: Backend = Depends(get_backend)):
    backend.users.update_password(user_id, body.newPassword)
    return {"message": "Password reset successfully"}


@auth_router.delete("/users/{user_id}")
def delete_user(user_id: str, claims: dict = Depends(require_admin), backend: Backend = Depends(get_backend)):
    backend.users.delete_user(user_id, acting_user_id=claims.get("userId"))
    return {"message": "User deleted successfully"}


# -----------------------
# /api/config
# -----------------------
config_router = APIRouter(prefix="/api/config")


@config_router.get("/category-mappings", dependencies=[Depends(require_user)])
def list_mappings(backend: Backend = Depends(get_backend)):
    return {"mappings": [m.model_dump() for m in backend.mappings.list_mappings()]}


@config_router.post("/category-mappings", dependencies=[Depends(require_admin)])
def create_mapping(body: MappingRequest, backend: Backend = Depends(get_backend)):
    mapping = backend.mappings.create_mapping(body.category, body.workspaceName)
    return {"mapping": mapping.model_dump()}


@config_router.put("/category-mappings/{category}", dependencies=[Depends(require_admin)])
def update_mapping(category: str, body: MappingRequest, backend: Backend = Depends(get_backend)):
    mapping = backend.mappings.update_mapping(category, body.workspaceName)
    return {"mapping": mapping.model_dump()}


@config_router.delete("/category-mappings/{category}", dependencies=[Depends(require_admin)])
def delete_mapping(category: str, backend: Backend = Depends(get_backend)):
    backend.mappings.delete_mapping(category)
    return {"message": "Category mapping deleted successfully"}


@config_router.get("/products", dependencies=[Depends(require_user)])
def list_products(backend: Backend = Depends(get_backend)):
    return {"products": [p.model_dump() for p in backend.products.list_products()]}


@config_router.get("/products/{product_id}", dependencies=[Depends(require_user)])
def get_product(product_id: str, backend: Backend = Depends(get_backend)):
    return {"product": _product_or_404(backend, product_id).model_dump()}


@config_router.post("/products", dependencies=[Depends(require_admin)])
def create_product(body: ProductRequest, backend: Backend = Depends(get_backend)):
    product = backend.products.create_product(body.name, body.questions)
    return {"product": product.model_dump()}


@config_router.put("/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, body: ProductRequest, backend: Backend = Depends(get_backend)):
    product = backend.products.update_product(product_id, body.name, body.questions)
    return {"product": product.model_dump()}


@config_router.delete("/products/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str, backend: Backend = Depends(get_backend)):
    backend.products.delete_product(product_id)
    return {"message": "Product deleted successfully"}


@config_router.get("/prompts", dependencies=[Depends(require_user)])
def get_prompts(backend: Backend = Depends(get_backend)):
    return {"prompts": backend.prompts.get_prompts().model_dump()}


@config_router.put("/prompts", dependencies=[Depends(require_admin)])
def update_prompts(body: PromptsRequest, backend: Backend = Depends(get_backend)):
    if not body.prompts:
        raise ValidationError("Prompts object is required")
    return {"prompts": backend.prompts.update_prompts(body.prompts).model_dump()}


@config_router.get("/workspaces", dependencies=[Depends(require_admin)])
def list_workspaces(backend: Backend = Depends(get_backend)):
    return {"workspaces": backend.kb_client.list_workspaces()}


# -----------------------
# /api/discovery
# -----------------------
discovery_router = APIRouter(prefix="/api/discovery", dependencies=[Depends(require_user)])


@discovery_router.post("/generate")
def generate_all(body: GenerateRequest, backend: Backend = Depends(get_backend)):
    product = _product_or_404(backend, body.productId)
    session = backend.orchestrator.start_session(product, body.customerName, body.projectName, body.answers)
    session.generate_all()
    return session.snapshot()


@discovery_router.post("/generate/{question_id}")
def generate_one(question_id: str, body: GenerateRequest, backend: Backend = Depends(get_backend)):
    product = _product_or_404(backend, body.productId)
    session = backend.orchestrator.start_session(product, body.customerName, body.projectName, body.answers)
    outcome = session.generate_one(question_id)
    return {
        "questionId": question_id,
        "result": outcome.render(),
        "warning": outcome.is_warning,
        "state": session.states[question_id].value,
    }


@discovery_router.post("/ask")
def ask(body: AskRequest, backend: Backend = Depends(get_backend)):
    if not body.category or not body.message or not body.message.strip():
        raise ValidationError("Category and message are required")
    outcome = backend.orchestrator.ask(body.category, body.message)
    return {"response": outcome.render(), "warning": outcome.is_warning}


@discovery_router.post("/export")
def export(body: ExportRequest, backend: Backend = Depends(get_backend)):
    product = _product_or_404(backend, body.productId)
    if body.generatedAnswers:
        return build_generated_export(
            product, body.customerName, body.projectName, body.answers, body.generatedAnswers
        )
    return build_answers_export(product, body.customerName, body.projectName, body.answers)


@discovery_router.post("/results")
def create_result(body: CreateResultRequest, backend: Backend = Depends(get_backend)):
    result_id = backend.results.create_result(
        body.customerName,
        body.projectName,
        body.productId,
        body.productName,
        body.answers,
        body.generatedAnswers,
    )
    return {"id": result_id, "message": "Discovery result saved successfully"}


@discovery_router.get("/results")
def list_results(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    backend: Backend = Depends(get_backend),
):
    # unparseable paging values fall back to the defaults
    results = backend.results.list_results(_int_or_default(limit, DEFAULT_LIMIT), _int_or_default(offset, 0))
    return {"results": [r.model_dump() for r in results]}


@discovery_router.get("/results/{result_id}")
def get_result(result_id: str, backend: Backend = Depends(get_backend)):
    result = backend.results.get_result(result_id)
    if result is None:
        raise NotFound("Discovery result not found")
    warnings = [qid for qid, text in (result.generated_answers or {}).items() if is_warning_text(text)]
    return {"result": result.model_dump(), "warnings": warnings}


@discovery_router.delete("/results/{result_id}")
def delete_result(result_id: str, backend: Backend = Depends(get_backend)):
    if not backend.results.delete_result(result_id):
        raise NotFound("Discovery result not found")
    return {"message": "Discovery result deleted successfully"}


# -----------------------
# App
# -----------------------

def create_app(backend: Optional[Backend] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "backend", None) is None:
            app.state.backend = Backend()
        app.state.backend.bootstrap()
        logger.info(
            "CORS enabled for: "
            + (", ".join(settings.CORS_ALLOWED_ORIGINS) if settings.IS_PRODUCTION else "all origins (development)")
        )
        yield

    app = FastAPI(title="KB Discovery API", lifespan=lifespan)
    app.state.backend = backend

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS if settings.IS_PRODUCTION else ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(DiscoveryError)
    async def discovery_error_handler(request: Request, exc: DiscoveryError):
        if isinstance(exc, StorageError):
            logger.error(f"{request.method} {request.url.path} storage failure on '{exc.collection}'")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/api/health")
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(auth_router)
    app.include_router(config_router)
    app.include_router(discovery_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
