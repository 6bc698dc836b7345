from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import bcrypt
from sqlalchemy import func, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from balances import recalculate_wallet_balance, wallet_transactions
from config import get_settings
from errors import (
    CreationFailure,
    DuplicateName,
    Forbidden,
    InvalidToken,
    NotFound,
    Unauthorized,
)
from mailer import Mailer, OutgoingMail, get_mailer
from models import Category, Transaction, User, UserRole, Wallet
from schemas import (
    AuthenticatedUserOut,
    CategoryIn,
    TransactionIn,
    UserCreateIn,
    UserOut,
    UserUpdateIn,
    WalletIn,
    WalletUpdateIn,
)
from tokens import (
    RESET_SALT,
    VERIFY_SALT,
    generate_email_token,
    generate_session_token,
    read_email_token,
    read_session_token,
)


logger = logging.getLogger(__name__)

LIKE_ESCAPE = "/"


def _escape_like(value: str) -> str:
    value = value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    return value.replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes and newer releases refuse longer input
    return bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt()).decode(
        "utf-8"
    )


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        password.encode("utf-8")[:72], hashed_password.encode("utf-8")
    )


def _password_fingerprint(user: User) -> str:
    return user.password_hash[-16:]


class CategoryService:
    """Categories, optionally scoped to one owner.

    An unscoped service (``user_id=None``) sees every category but cannot
    create new ones.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _owned(self, category: Optional[Category]) -> Optional[Category]:
        if category is None:
            return None
        if self.user_id is not None and category.user_id != self.user_id:
            return None
        return category

    def _find_by_name(
        self, user_id: int, name: str, exclude_id: Optional[int] = None
    ) -> Optional[Category]:
        stmt = select(Category).where(
            Category.user_id == user_id,
            func.lower(Category.name) == func.lower(literal(name.strip())),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt)

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        if self.user_id is not None:
            stmt = stmt.where(Category.user_id == self.user_id)
        return list(self.session.scalars(stmt))

    def get(self, category_id: int) -> Optional[Category]:
        return self._owned(self.session.get(Category, category_id))

    def search_by_name(self, name: str) -> list[Category]:
        # both sides are folded by the database; LIKE metacharacters match literally
        pattern = f"%{_escape_like(name)}%"
        stmt = (
            select(Category)
            .where(
                func.upper(Category.name).like(
                    func.upper(literal(pattern)), escape=LIKE_ESCAPE
                )
            )
            .order_by(Category.name, Category.id)
        )
        if self.user_id is not None:
            stmt = stmt.where(Category.user_id == self.user_id)
        return list(self.session.scalars(stmt))

    def create(self, data: CategoryIn) -> Category:
        if self.user_id is None:
            raise CreationFailure("A category needs an owner")
        name = data.name.strip()
        if self._find_by_name(self.user_id, name):
            raise DuplicateName(f"This user already has a category named {name}")
        category = Category(
            user_id=self.user_id,
            name=name,
            transaction_type=data.transaction_type,
        )
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise CreationFailure(f"Could not create category {name}") from exc
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        if not category:
            raise NotFound("Category not found")
        name = data.name.strip()
        if self._find_by_name(category.user_id, name, exclude_id=category.id):
            raise DuplicateName(f"This user already has a category named {name}")
        category.name = name
        category.transaction_type = data.transaction_type
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> str:
        category = self.get(category_id)
        if not category:
            raise NotFound("Category not found")
        self.session.delete(category)
        self.session.commit()
        return "Category deleted successfully!"


class WalletService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Wallet]:
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == self.user_id)
            .order_by(Wallet.name, Wallet.id)
        )
        return list(self.session.scalars(stmt))

    def get(self, wallet_id: int) -> Wallet:
        wallet = self.session.get(Wallet, wallet_id)
        if not wallet or wallet.user_id != self.user_id:
            raise NotFound("Wallet not found")
        return wallet

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Wallet).where(
            Wallet.user_id == self.user_id,
            func.lower(Wallet.name) == func.lower(literal(name)),
        )
        if exclude_id is not None:
            stmt = stmt.where(Wallet.id != exclude_id)
        if self.session.scalar(stmt):
            raise DuplicateName(f"This user already has a wallet named {name}")

    def create(self, data: WalletIn) -> Wallet:
        name = data.name.strip()
        self._ensure_unique_name(name)
        wallet = Wallet(
            user_id=self.user_id,
            name=name,
            initial_balance_cents=data.initial_balance_cents,
            current_balance_cents=data.initial_balance_cents,
        )
        self.session.add(wallet)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise CreationFailure(f"Could not create wallet {name}") from exc
        self.session.refresh(wallet)
        return wallet

    def refresh_balance(self, wallet: Wallet) -> int:
        wallet.current_balance_cents = recalculate_wallet_balance(
            self.session, wallet.id, wallet.initial_balance_cents
        )
        return wallet.current_balance_cents

    def update(self, wallet_id: int, data: WalletUpdateIn) -> Wallet:
        wallet = self.get(wallet_id)
        if data.name is not None:
            name = data.name.strip()
            self._ensure_unique_name(name, exclude_id=wallet.id)
            wallet.name = name
        if data.initial_balance_cents is not None:
            wallet.initial_balance_cents = data.initial_balance_cents
            self.refresh_balance(wallet)
        self.session.commit()
        self.session.refresh(wallet)
        return wallet

    def balance(self, wallet_id: int) -> Wallet:
        wallet = self.get(wallet_id)
        self.refresh_balance(wallet)
        self.session.commit()
        return wallet

    def delete(self, wallet_id: int) -> None:
        wallet = self.get(wallet_id)
        self.session.delete(wallet)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.wallets = WalletService(session, user_id)

    def list_for_wallet(self, wallet_id: int) -> list[Transaction]:
        wallet = self.wallets.get(wallet_id)
        return wallet_transactions(self.session, wallet.id)

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFound("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        wallet = self.wallets.get(data.from_wallet_id)
        if data.category_id is not None:
            category = self.session.get(Category, data.category_id)
            if not category or category.user_id != self.user_id:
                raise NotFound("Category not found")
        txn = Transaction(
            user_id=self.user_id,
            from_wallet_id=wallet.id,
            category_id=data.category_id,
            credit_cents=data.credit_cents,
            debit_cents=data.debit_cents,
            description=data.description,
            occurred_at=data.occurred_at or datetime.utcnow(),
        )
        self.session.add(txn)
        self.session.flush()
        self.wallets.refresh_balance(wallet)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        wallet = txn.from_wallet
        self.session.delete(txn)
        self.session.flush()
        self.wallets.refresh_balance(wallet)
        self.session.commit()


class UserService:
    def __init__(self, session: Session, mailer: Optional[Mailer] = None) -> None:
        self.session = session
        self.mailer = mailer or get_mailer()
        self.settings = get_settings()

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )

    def create(self, data: UserCreateIn, host: Optional[str]) -> User:
        email = data.email.strip().lower()
        if self._find_by_email(email):
            raise DuplicateName("A user with this email address already exists")
        user = User(
            email=email,
            name=data.name,
            password_hash=hash_password(data.password),
            role=UserRole.regular,
            is_verified=False,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise CreationFailure("Could not register user") from exc
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id}")

        token = generate_email_token(user.id, user.email, VERIFY_SALT)
        self.mailer.send(
            OutgoingMail(
                to=user.email,
                subject="Confirm your email address",
                body=(
                    "Welcome! Confirm your address by visiting:\n"
                    f"http://{host or 'localhost'}/users/verify-user?token={token}"
                ),
            )
        )
        return user

    def create_admin(
        self, email: str, password: str, name: Optional[str] = None
    ) -> User:
        """Create a verified administrator, bypassing email verification."""
        if self._find_by_email(email):
            raise DuplicateName("A user with this email address already exists")
        user = User(
            email=email.strip().lower(),
            name=name,
            password_hash=hash_password(password),
            role=UserRole.admin,
            is_verified=True,
            verified_at=datetime.utcnow(),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def authenticate_user(
        self, email: str, password: str, ip_address: Optional[str]
    ) -> AuthenticatedUserOut:
        user = self._find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.info(f"authentication_failed: ip={ip_address}")
            raise Unauthorized("Email or password is incorrect")
        if not user.is_verified:
            raise Forbidden("Email address has not been verified yet")
        logger.info(f"authentication_succeeded: id={user.id} ip={ip_address}")
        token = generate_session_token(user.id, user.role.value)
        return AuthenticatedUserOut(
            **UserOut.model_validate(user).model_dump(),
            authorization_token=token,
        )

    def principal_from_token(self, token: Optional[str]) -> User:
        user = self.session.get(User, read_session_token(token))
        if not user:
            raise Unauthorized("Invalid or expired session")
        return user

    def _user_from_email_token(
        self, token: Optional[str], purpose: str, max_age_hours: int
    ) -> tuple[User, dict]:
        data = read_email_token(token, purpose, max_age_hours)
        user = self.session.get(User, data["u"])
        if not user or user.email != data.get("e"):
            raise NotFound("User not found")
        return user, data

    def verify_email(self, token: Optional[str]) -> User:
        user, _ = self._user_from_email_token(
            token, VERIFY_SALT, self.settings.verify_max_age_hours
        )
        if user.is_verified:
            return user
        user.is_verified = True
        user.verified_at = datetime.utcnow()
        self.session.commit()
        logger.info(f"user_verified: id={user.id}")
        return user

    def forgot_password(self, email: str, host: Optional[str]) -> None:
        user = self._find_by_email(email)
        if not user:
            logger.info("forgot_password: no account for the requested address")
            return
        token = generate_email_token(
            user.id, user.email, RESET_SALT, _password_fingerprint(user)
        )
        self.mailer.send(
            OutgoingMail(
                to=user.email,
                subject="Reset your password",
                body=(
                    "A password reset was requested for your account. "
                    "Choose a new password at:\n"
                    f"http://{host or 'localhost'}/users/reset-password?token={token}\n"
                    "If you did not ask for this, ignore this message."
                ),
            )
        )

    def reset_password(self, token: str, password: str) -> None:
        user, data = self._user_from_email_token(
            token, RESET_SALT, self.settings.reset_max_age_hours
        )
        if data.get("f") != _password_fingerprint(user):
            raise InvalidToken("Token has already been used")
        user.password_hash = hash_password(password)
        self.session.commit()
        logger.info(f"password_reset: id={user.id}")

    def get_all(self) -> list[User]:
        return list(self.session.scalars(select(User).order_by(User.id)))

    def get_by_id(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def update(self, user_id: int, data: UserUpdateIn) -> User:
        user = self.get_by_id(user_id)
        if data.email is not None:
            email = data.email.strip().lower()
            existing = self._find_by_email(email)
            if existing and existing.id != user.id:
                raise DuplicateName("A user with this email address already exists")
            user.email = email
        if data.password is not None:
            user.password_hash = hash_password(data.password)
        if data.name is not None:
            user.name = data.name
        if data.role is not None:
            user.role = data.role
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user_id: int) -> None:
        user = self.get_by_id(user_id)
        self.session.delete(user)
        self.session.commit()
        logger.info(f"user_deleted: id={user_id}")
