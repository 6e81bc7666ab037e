from pydantic import BaseModel, Field
from typing import Optional

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str

# Auth schemas
class LoginRequest(BaseModel):
    """Portal login: the username is the patient's CPF"""
    cpf: str = Field(..., min_length=11, max_length=11, pattern=r"^\d{11}$")
    password: str = Field(..., min_length=1)

class UserInfo(BaseModel):
    """Logged-in patient as returned by /auth/login"""
    id: str
    fhirId: Optional[str] = None
    name: str
    cpf: str

class LoginResponse(BaseModel):
    """Access token plus the logged-in patient"""
    accessToken: str
    user: UserInfo

class TokenClaims(BaseModel):
    """Claims of the current access token"""
    sub: str
    fhirId: Optional[str] = None
    cpf: Optional[str] = None

class MeResponse(BaseModel):
    """Response for /auth/me"""
    user: TokenClaims
