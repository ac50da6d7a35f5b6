# flowershop/schemas/auth.py

from typing import Optional
from flowershop.schemas.base import CamelModel


class LoginStart(CamelModel):
    email: Optional[str] = ""
    password: Optional[str] = ""


class RegisterStart(CamelModel):
    email: Optional[str] = ""
    name: Optional[str] = ""
    phone: Optional[str] = ""
    password: Optional[str] = ""


class PasswordResetStart(CamelModel):
    email: Optional[str] = ""


class OtpVerify(CamelModel):
    otp_id: Optional[str] = ""
    email: Optional[str] = ""
    code: Optional[str] = ""


class PasswordResetVerify(OtpVerify):
    new_password: Optional[str] = ""
