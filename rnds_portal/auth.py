"""Portal authentication.

Login and caller resolution are strategies chosen once when the application
is wired:

- ``DatabaseAuthenticator`` checks the CPF/password against the bcrypt hash
  stored in ``patient_credentials``.
- ``DemoAuthenticator`` accepts a single fixed demo user (development only).
- ``TokenCallerResolver`` turns a bearer JWT into the authenticated caller.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models
from .config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Invalid credentials or token (HTTP 401)."""


class AuthorizationError(Exception):
    """Authenticated caller may not perform the action (HTTP 403)."""


@dataclass(frozen=True)
class Caller:
    """Identity carried by the access token."""
    sub: str
    fhir_id: Optional[str]
    cpf: Optional[str]


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    fhir_id: Optional[str]
    name: str
    cpf: str


# ============================================================================
# Passwords and tokens
# ============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class TokenService:
    """Issues and verifies HS256 access tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user: AuthenticatedUser) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "fhirId": user.fhir_id,
            "cpf": user.cpf,
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Caller:
        """
        Decode a token.

        Raises:
            AuthenticationError: If the token is invalid or expired
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            raise AuthenticationError("Invalid or expired token") from e

        if not payload.get("sub"):
            raise AuthenticationError("Invalid or expired token")
        return Caller(sub=payload["sub"], fhir_id=payload.get("fhirId"), cpf=payload.get("cpf"))


# ============================================================================
# Login strategies
# ============================================================================

class Authenticator(Protocol):
    def authenticate(self, db: Session, cpf: str, password: str) -> AuthenticatedUser: ...


def _display_name(patient: models.Patient) -> str:
    if patient.names:
        name = patient.names[0]
        return name.text or name.given or "Paciente"
    return "Paciente"


class DatabaseAuthenticator:
    """Checks credentials stored in the patient_credentials table."""

    def authenticate(self, db: Session, cpf: str, password: str) -> AuthenticatedUser:
        """
        Raises:
            AuthenticationError: Unknown CPF or wrong password
            AuthorizationError: Patient is inactive
        """
        stmt = (
            select(models.PatientCredential)
            .options(selectinload(models.PatientCredential.patient).selectinload(models.Patient.names))
            .where(models.PatientCredential.username == cpf)
        )
        credential = db.execute(stmt).scalar_one_or_none()

        if credential is None or not verify_password(password, credential.password_hash):
            raise AuthenticationError("Incorrect CPF or password")

        patient = credential.patient
        if not patient.active:
            raise AuthorizationError("Inactive user")

        return AuthenticatedUser(
            id=patient.id,
            fhir_id=patient.fhir_id,
            name=_display_name(patient),
            cpf=patient.cpf or cpf,
        )


class DemoAuthenticator:
    """Accepts one fixed demo user; no database access."""

    def __init__(self, user: AuthenticatedUser, password: str):
        self.user = user
        self.password = password

    def authenticate(self, db: Session, cpf: str, password: str) -> AuthenticatedUser:
        if cpf == self.user.cpf and password == self.password:
            return self.user
        raise AuthenticationError("Incorrect CPF or password")


DEMO_USER = AuthenticatedUser(
    id="patient-mock-123",
    fhir_id="patient-123",
    name="Maria Oliveira",
    cpf="12345678910",
)
DEMO_PASSWORD = "12345"


# ============================================================================
# Caller resolution
# ============================================================================

class CallerResolver(Protocol):
    def resolve(self, token: Optional[str]) -> Caller: ...


class TokenCallerResolver:
    """Resolves the caller from a bearer JWT."""

    def __init__(self, tokens: TokenService):
        self.tokens = tokens

    def resolve(self, token: Optional[str]) -> Caller:
        if not token:
            raise AuthenticationError("Missing authentication token")
        return self.tokens.verify(token)


token_service = TokenService(
    settings.jwt_secret,
    settings.jwt_algorithm,
    settings.access_token_expire_minutes,
)


def get_token_service() -> TokenService:
    return token_service


def get_authenticator() -> Authenticator:
    if settings.enable_mock_auth:
        return DemoAuthenticator(DEMO_USER, DEMO_PASSWORD)
    return DatabaseAuthenticator()


def get_caller_resolver(tokens: TokenService = Depends(get_token_service)) -> CallerResolver:
    return TokenCallerResolver(tokens)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolver: CallerResolver = Depends(get_caller_resolver),
) -> Caller:
    """Resolve the authenticated caller.

    Raises:
        HTTPException: 401 if the token is missing, invalid, or expired.
    """
    token = credentials.credentials if credentials else None
    try:
        return resolver.resolve(token)
    except AuthenticationError as e:
        logger.warning("Rejected request: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def ensure_own_record(caller: Caller, patient_id: str) -> None:
    """A patient may only read their own records."""
    if caller.sub != patient_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: you can only access your own data",
        )
