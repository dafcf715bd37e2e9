"""Request shapes used by the API blueprint."""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from fieldguard.validation import rule_field


@dataclass
class RegisterUserRequest:
    username: str = rule_field("required,username")
    email: str = rule_field("required,email")
    password: str = rule_field("required,password")
    confirm_password: str = rule_field("required,eqfield=password", wire_name="confirmPassword")
    display_name: Optional[str] = rule_field("max=64", wire_name="displayName")
    role: str = rule_field("oneof=admin editor viewer", default="viewer")
    website: Optional[str] = rule_field("url")


@dataclass
class UpdateUserRequest:
    """PATCH payload: only the fields present in the request are validated."""

    email: Optional[str] = rule_field("required,email")
    display_name: Optional[str] = rule_field("required,min=1,max=64", wire_name="displayName")
    website: Optional[str] = rule_field("required,url")


@dataclass
class UserParams:
    username: str = rule_field("required,username")


@dataclass
class ListPostsQuery:
    page: int = rule_field("required,gte=1", default=1)
    per_page: int = rule_field("required,gte=1,lte=100", wire_name="perPage", default=20)
    status: Optional[str] = rule_field("oneof=draft published archived")
    tags: List[str] = rule_field("max=10", default_factory=list)
    published_after: Optional[date] = rule_field(wire_name="publishedAfter")
    published_before: Optional[date] = rule_field(
        "gtfield=published_after", wire_name="publishedBefore"
    )


@dataclass
class PostParams:
    slug: str = rule_field("required,slug,max=100")


@dataclass
class ApiClientHeaders:
    api_key: str = rule_field("required,alphanum,len=32", wire_name="X-Api-Key")
    request_id: Optional[str] = rule_field("uuid", wire_name="X-Request-Id")
