"""
recruiters/services.py

Resolves the recruiter context for an authenticated request.
"""

from recruiters.models import RecruiterProfile


def get_recruiter_for_user(user) -> "RecruiterProfile | None":
    """Return the user's RecruiterProfile, or None when absent / anonymous."""
    if user is None or not user.is_authenticated:
        return None
    return RecruiterProfile.objects.filter(user=user).first()
