"""
Survey access rules.

- The creator can always access, edit, delete and see analytics
- Personal surveys (no organization) are creator-only
- Private organization surveys are creator-only
- Organization-visible surveys are open to members of that organization
- view_all_analytics grants analytics on any survey of the member's organization
"""

from typing import Iterable
from uuid import UUID

from survey_platform.models.survey import VISIBILITY_ORGANIZATION, VISIBILITY_PRIVATE

VIEW_ALL_ANALYTICS = "view_all_analytics"


def can_access_survey(survey, user_id: UUID, org_memberships: Iterable[UUID] = ()) -> bool:
    if survey.user_id == user_id:
        return True
    if survey.organization_id is None:
        return False
    if survey.visibility == VISIBILITY_PRIVATE:
        return False
    return survey.visibility == VISIBILITY_ORGANIZATION and survey.organization_id in set(org_memberships)


def can_edit_survey(survey, user_id: UUID, permissions: Iterable[str] = ()) -> bool:
    # manage_all_surveys does not grant edit rights on colleagues' surveys yet
    return survey.user_id == user_id


def can_view_analytics(
    survey,
    user_id: UUID,
    org_memberships: Iterable[UUID] = (),
    permissions: Iterable[str] = (),
) -> bool:
    if survey.user_id == user_id:
        return True
    if survey.organization_id is None or survey.organization_id not in set(org_memberships):
        return False
    if VIEW_ALL_ANALYTICS in set(permissions):
        return True
    return survey.visibility == VISIBILITY_ORGANIZATION


def can_delete_survey(survey, user_id: UUID, permissions: Iterable[str] = ()) -> bool:
    return survey.user_id == user_id
