from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.orm import Session
from typing import List
import logging
import os
import uvicorn

import models
import auth
import orders
from database import engine, get_db, init_admin, wait_for_db, SessionLocal
from middleware import RequestIDMiddleware, RequestLoggingMiddleware
from schemas import (
    UserCreate,
    UserLogin,
    UserResponse,
    MenuItemCreate,
    MenuItemResponse,
    OrderCreate,
    OrderResponse,
)
from store import Store, StoreError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("canteen")


app = FastAPI(title="Canteen API")

# Starlette runs the last added middleware first: request id, then logging, then CORS.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.on_event("startup")
def startup_event():
    if not wait_for_db():
        logger.error("Database did not become ready during startup")
        return

    logger.info("Creating database tables...")
    models.Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        init_admin(db, os.getenv("ADMIN_EMAIL"), os.getenv("ADMIN_PASSWORD"))
    finally:
        db.close()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def get_store(db: Session = Depends(get_db)) -> Store:
    return Store(db)


def get_current_user(request: Request, store: Store = Depends(get_store)) -> models.User:
    token = request.cookies.get(auth.SESSION_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="not authenticated")

    user_id = auth.read_session_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="not authenticated")

    try:
        user = store.user().find(user_id)
    except StoreError:
        raise HTTPException(status_code=401, detail="not authenticated")

    request.state.user = user
    return user


def require_admin(request: Request, _: models.User = Depends(get_current_user)) -> models.User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="unauthorized access: missing user information")
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="insufficient privileges: requires admin role")
    return user


def json_body(model, guard):
    """Decode the request body into ``model`` only after ``guard`` has let the
    request through, so auth failures win over malformed bodies."""
    async def dependency(request: Request, _=Depends(guard)):
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON decode error")
        try:
            return model.parse_obj(data)
        except ValidationError as e:
            errors = e.errors()
            message = errors[0]["msg"] if errors else "invalid request"
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

    return dependency


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(user: UserCreate, store: Store = Depends(get_store)):
    db_user = models.User(email=user.email, password=auth.get_password_hash(user.password), role="user")
    try:
        store.user().create(db_user)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    logger.info(f"User registered: {db_user.id}")
    return db_user


@app.post("/sessions", response_model=UserResponse)
def create_session(credentials: UserLogin, response: Response, store: Store = Depends(get_store)):
    try:
        user = store.user().find_by_email(credentials.email)
    except StoreError:
        user = None

    if not user or not auth.verify_password(credentials.password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="incorrect email or password")

    auth.set_session_cookie(response, user.id)
    return user


@app.delete("/sessions")
def delete_session(response: Response):
    auth.clear_session_cookie(response)
    return {"message": "signed out"}


@app.get("/menuItems", response_model=List[MenuItemResponse])
def list_menu_items(store: Store = Depends(get_store)):
    return store.menu_item().all()


admin = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@admin.post("/menuItem", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
def create_menu_item(
    item: MenuItemCreate = Depends(json_body(MenuItemCreate, require_admin)),
    store: Store = Depends(get_store),
):
    menu_item = models.MenuItem(**item.dict())
    try:
        store.menu_item().create(menu_item)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return menu_item


@admin.delete("/menuItem/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_menu_item(item_id: int, store: Store = Depends(get_store)):
    try:
        store.menu_item().delete(item_id)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


private = APIRouter(prefix="/private", dependencies=[Depends(get_current_user)])


@private.get("/whoami", response_model=UserResponse)
def whoami(request: Request):
    return request.state.user


@private.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    request: Request,
    order: OrderCreate = Depends(json_body(OrderCreate, get_current_user)),
    store: Store = Depends(get_store),
):
    return orders.create_order(store, request.state.user, order.pairs())


app.include_router(admin)
app.include_router(private)


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
