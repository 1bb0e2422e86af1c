from pydantic import BaseModel


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


class HealthResponse(BaseModel):
    status: str
    service: str
