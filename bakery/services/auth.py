from flask_jwt_extended import get_jwt_identity, get_jwt, verify_jwt_in_request

from bakery import db
from bakery.errors import AuthRequired, Forbidden
from bakery.models import Profile, UserRole


def current_profile():
    """Profile of the caller, or None for anonymous requests."""
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity is None:
        return None
    return db.session.get(Profile, int(identity))


def require_profile():
    profile = current_profile()
    if profile is None:
        raise AuthRequired("Log in to continue.")
    return profile


def require_admin():
    """Check the JWT role claim and the stored role; both must say admin."""
    profile = require_profile()
    if get_jwt().get("role") != UserRole.ADMIN.value or not profile.is_admin:
        raise Forbidden("Access forbidden: Admin role required.")
    return profile
