import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from errors import AppError, Forbidden, NotFound, Unauthorized
from mailer import Mailer, get_mailer
from models import User, UserRole
from schemas import (
    AuthenticatedUserOut,
    CategoryIn,
    CategoryOut,
    ForgotPasswordIn,
    MessageOut,
    ResetPasswordIn,
    TransactionIn,
    TransactionOut,
    UserAuthenticateIn,
    UserCreateIn,
    UserOut,
    UserUpdateIn,
    WalletBalanceOut,
    WalletIn,
    WalletOut,
    WalletUpdateIn,
)
from services import CategoryService, TransactionService, UserService, WalletService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
SESSION_COOKIE = "token"

app = FastAPI(title="Personal Finance API")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def render(
    request: Request, template: str, context: dict[str, object], status_code: int = 200
) -> HTMLResponse:
    return templates.TemplateResponse(
        request, template, context, status_code=status_code
    )


def get_user_service(
    db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)
) -> UserService:
    return UserService(db, mailer)


def session_token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def auth_guard(
    request: Request, service: UserService = Depends(get_user_service)
) -> User:
    return service.principal_from_token(session_token_from_request(request))


def block_regular_user_to_get_other_users(
    requesting_user_id: str, requesting_user_role: str, target_user_id: str
) -> None:
    if (
        str(requesting_user_id) != str(target_user_id)
        and requesting_user_role != UserRole.admin
    ):
        raise Unauthorized("Unauthorized access")


# Users
# ---------------------------------------------------------------------------

users = APIRouter(prefix="/users", tags=["users"])


@users.post("/register", status_code=201, response_model=UserOut)
def insert_new_user(
    data: UserCreateIn,
    request: Request,
    service: UserService = Depends(get_user_service),
):
    return service.create(data, request.headers.get("host"))


@users.get("/verify-user", response_class=HTMLResponse)
def verify_user_account(
    request: Request,
    token: Optional[str] = None,
    service: UserService = Depends(get_user_service),
):
    try:
        service.verify_email(token)
    except AppError as exc:
        logger.error(f"Error while user email verification: {exc.message}")
        return render(
            request,
            "verify-user.html",
            {"message": exc.message},
            status_code=exc.status_code,
        )
    return render(
        request,
        "verify-user.html",
        {"message": "User verification successful, now you can log in!"},
    )


@users.post("/authenticate", response_model=AuthenticatedUserOut)
def authenticate(
    data: UserAuthenticateIn,
    request: Request,
    response: Response,
    service: UserService = Depends(get_user_service),
):
    ip_address = request.client.host if request.client else None
    logged_user = service.authenticate_user(data.email, data.password, ip_address)

    settings = get_settings()
    origin = request.headers.get("origin")
    if origin:
        response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.set_cookie(
        SESSION_COOKIE,
        logged_user.authorization_token,
        max_age=settings.session_max_age_secs,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    return logged_user


@users.post("/logout", response_model=MessageOut)
def logoff_user(response: Response, _user: User = Depends(auth_guard)):
    response.set_cookie(
        SESSION_COOKIE,
        "",
        httponly=True,
        secure=get_settings().cookie_secure,
        samesite="strict",
    )
    return MessageOut(message="Logout successful")


@users.post("/forgot-password", response_model=MessageOut)
def forgot_password(
    data: ForgotPasswordIn,
    request: Request,
    service: UserService = Depends(get_user_service),
):
    service.forgot_password(data.email, request.headers.get("host"))
    return MessageOut(
        message=(
            "If there is a registered email address, you will receive an email "
            "containing the necessary instructions."
        )
    )


@users.get("/reset-password", response_class=HTMLResponse)
def render_change_password_page(request: Request, token: str = ""):
    return render(request, "change-user-password-page.html", {"token": token})


@users.post("/reset-password", response_model=MessageOut)
def reset_password(
    data: ResetPasswordIn, service: UserService = Depends(get_user_service)
):
    service.reset_password(data.token, data.password)
    return MessageOut(message="Password reset successful, you can now login")


@users.get("/current", response_model=UserOut)
def get_logged_in_user(user: User = Depends(auth_guard)):
    return user


@users.get("/", response_model=list[UserOut])
def list_all_users(
    user: User = Depends(auth_guard),
    service: UserService = Depends(get_user_service),
):
    if user.role != UserRole.admin:
        raise Forbidden("Only administrators can list users")
    return service.get_all()


@users.get("/{user_id}", response_model=UserOut)
def get_by_id(
    user_id: int,
    user: User = Depends(auth_guard),
    service: UserService = Depends(get_user_service),
):
    block_regular_user_to_get_other_users(str(user.id), user.role, str(user_id))
    return service.get_by_id(user_id)


@users.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    data: UserUpdateIn,
    user: User = Depends(auth_guard),
    service: UserService = Depends(get_user_service),
):
    block_regular_user_to_get_other_users(str(user.id), user.role, str(user_id))
    if data.role is not None and user.role != UserRole.admin:
        raise Unauthorized("Only administrators can change roles")
    return service.update(user_id, data)


@users.delete("/{user_id}", response_model=MessageOut)
def delete_user(
    user_id: int,
    user: User = Depends(auth_guard),
    service: UserService = Depends(get_user_service),
):
    block_regular_user_to_get_other_users(str(user.id), user.role, str(user_id))
    service.delete(user_id)
    return MessageOut(message="User successfully deleted")


# Categories
# ---------------------------------------------------------------------------

categories = APIRouter(prefix="/categories", tags=["categories"])


@categories.get("", response_model=list[CategoryOut])
def list_categories(user: User = Depends(auth_guard), db: Session = Depends(get_db)):
    return CategoryService(db, user.id).list_all()


@categories.get("/search", response_model=list[CategoryOut])
def search_categories(
    name: str, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return CategoryService(db, user.id).search_by_name(name)


@categories.post("", status_code=201, response_model=CategoryOut)
def create_category(
    data: CategoryIn, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return CategoryService(db, user.id).create(data)


@categories.get("/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    category = CategoryService(db, user.id).get(category_id)
    if not category:
        raise NotFound("Category not found")
    return category


@categories.put("/{category_id}", response_model=CategoryOut)
def edit_category(
    category_id: int,
    data: CategoryIn,
    user: User = Depends(auth_guard),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user.id).update(category_id, data)


@categories.delete("/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return MessageOut(message=CategoryService(db, user.id).delete(category_id))


# Wallets
# ---------------------------------------------------------------------------

wallets = APIRouter(prefix="/wallets", tags=["wallets"])


@wallets.get("", response_model=list[WalletOut])
def list_wallets(user: User = Depends(auth_guard), db: Session = Depends(get_db)):
    return WalletService(db, user.id).list_all()


@wallets.post("", status_code=201, response_model=WalletOut)
def create_wallet(
    data: WalletIn, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return WalletService(db, user.id).create(data)


@wallets.get("/{wallet_id}", response_model=WalletOut)
def get_wallet(
    wallet_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return WalletService(db, user.id).get(wallet_id)


@wallets.put("/{wallet_id}", response_model=WalletOut)
def update_wallet(
    wallet_id: int,
    data: WalletUpdateIn,
    user: User = Depends(auth_guard),
    db: Session = Depends(get_db),
):
    return WalletService(db, user.id).update(wallet_id, data)


@wallets.delete("/{wallet_id}", response_model=MessageOut)
def delete_wallet(
    wallet_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    WalletService(db, user.id).delete(wallet_id)
    return MessageOut(message="Wallet deleted successfully!")


@wallets.get("/{wallet_id}/balance", response_model=WalletBalanceOut)
def wallet_balance(
    wallet_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    wallet = WalletService(db, user.id).balance(wallet_id)
    return WalletBalanceOut(
        wallet_id=wallet.id,
        initial_balance_cents=wallet.initial_balance_cents,
        current_balance_cents=wallet.current_balance_cents,
    )


@wallets.get("/{wallet_id}/transactions", response_model=list[TransactionOut])
def wallet_transactions(
    wallet_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return TransactionService(db, user.id).list_for_wallet(wallet_id)


# Transactions
# ---------------------------------------------------------------------------

transactions = APIRouter(prefix="/transactions", tags=["transactions"])


@transactions.post("", status_code=201, response_model=TransactionOut)
def create_transaction(
    data: TransactionIn, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return TransactionService(db, user.id).create(data)


@transactions.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    return TransactionService(db, user.id).get(transaction_id)


@transactions.delete("/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int, user: User = Depends(auth_guard), db: Session = Depends(get_db)
):
    TransactionService(db, user.id).delete(transaction_id)
    return MessageOut(message="Transaction deleted successfully!")


app.include_router(users)
app.include_router(categories)
app.include_router(wallets)
app.include_router(transactions)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
