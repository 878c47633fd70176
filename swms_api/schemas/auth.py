"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency. The workflow only
    needs an id for created_by/reviewed_by stamps and an email for audits.
    """
    user_id: UUID
    email: str
    display_name: str
