"""
Pydantic schemas for simple password management.
"""

from bankcore.schemas.common import CamelModel


class SimplePasswordRegisterRequest(CamelModel):
    simple_password: str
    simple_password_confirm: str


class SimplePasswordChangeRequest(CamelModel):
    current_simple_password: str
    new_simple_password: str
    new_simple_password_confirm: str


class SimplePasswordVerifyRequest(CamelModel):
    simple_password: str


class SimplePasswordVerifyResponse(CamelModel):
    valid: bool


class SimplePasswordResponse(CamelModel):
    has_simple_password: bool
    message: str
