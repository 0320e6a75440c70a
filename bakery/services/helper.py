from bakery.models import Profile, UserRole
from bakery import db

from flask import current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token
)
from passlib.hash import pbkdf2_sha256
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from flask_smorest import abort

from datetime import datetime
import logging
import pytz

logger = logging.getLogger(__name__)


def shop_today():
    """Today's date in the shop's time zone, not the server's."""
    tz = pytz.timezone(current_app.config.get("SHOP_TIMEZONE", "UTC"))
    return datetime.now(tz).date()


def role_for_email(email):
    admins = current_app.config.get("ADMIN_EMAILS") or []
    return UserRole.ADMIN if email.lower() in admins else UserRole.CUSTOMER


def issue_tokens(profile):
    claims = {"role": profile.role.value}
    access_token = create_access_token(identity=str(profile.id), additional_claims=claims, fresh=True)
    refresh_token = create_refresh_token(identity=str(profile.id), additional_claims=claims)
    return access_token, refresh_token


# Create a new profile and generate tokens
def create_logic(data, extra_msg=""):
    """Business logic to register a new profile"""

    data["email"] = data["email"].lower()
    data["password"] = pbkdf2_sha256.hash(data["password"])
    data["role"] = role_for_email(data["email"])
    item = Profile(**data)

    try:
        db.session.add(item)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if "email" in str(e.orig):
            abort(400, message="A profile with this email already exists.")
        abort(500, message="Could not create the profile.")
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error creating profile: {e}")
        abort(500, message="An error occurred while creating the profile.")

    logger.info(f"Profile {item.id} registered with role {item.role.value}",
                extra={'event': 'profile_registered', 'user_id': item.id})

    access_token, refresh_token = issue_tokens(item)
    return {
        "profile": item.to_dict(),
        "access_token": access_token,
        "refresh_token": refresh_token,
        "message": "Profile created successfully" + extra_msg,
        "status": 201
    }, 201


# Login a profile

def login_logic(login_data):
    """Business logic to log in a profile."""
    item = Profile.query.filter_by(email=login_data["email"].lower()).first()

    if not item or not pbkdf2_sha256.verify(login_data["password"], item.password):
        abort(401, message="Invalid email or password.")

    access_token, refresh_token = issue_tokens(item)

    return {
        "message": "Login successful",
        "access_token": access_token,
        "refresh_token": refresh_token,
        "status": 200
    }, 200
