"""
Current member context.

Authentication is handled by an external identity provider; the API trusts
the member id it forwards in the X-Member-Id header. The resulting Member is
passed explicitly into every domain function.
"""
from typing import Optional

from fastapi import Header
from pydantic import BaseModel

from errors import NotAuthenticated


class Member(BaseModel):
    id: str
    nickname: Optional[str] = None


def get_current_member(
    x_member_id: Optional[str] = Header(None),
    x_member_nickname: Optional[str] = Header(None),
) -> Member:
    if not x_member_id or not x_member_id.strip():
        raise NotAuthenticated("Login required")
    return Member(id=x_member_id.strip(), nickname=x_member_nickname)
