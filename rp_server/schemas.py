"""Pydantic schemas for request/response payloads."""

from __future__ import annotations

import json
from typing import Optional, Union

from pydantic import BaseModel


class RegisterChallengeRequest(BaseModel):
    username: str


class AuthenticateChallengeRequest(BaseModel):
    username: str
    handle: Optional[str] = None


class VerifyRequest(BaseModel):
    username: str
    response: Union[dict, str]

    def response_text(self) -> str:
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


class RPResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[dict] = None
