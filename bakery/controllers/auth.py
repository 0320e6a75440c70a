from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import jwt_required, get_jwt

from bakery.schemas import ProfileRegisterSchema, ProfileLoginSchema
from bakery.services.auth import require_profile
from bakery.services.helper import create_logic, login_logic
from bakery.services.logout import logout_logic


blp = Blueprint("Auth", __name__, url_prefix="/api/auth",
                description="Registration, login and the current profile")


@blp.route("/register")
class Register(MethodView):
    @blp.arguments(ProfileRegisterSchema)
    def post(self, profile_data):
        """Register a customer profile (admins are recognised by email)."""
        return create_logic(profile_data)


@blp.route("/login")
class Login(MethodView):
    @blp.arguments(ProfileLoginSchema)
    def post(self, login_data):
        """Log in and receive access and refresh tokens."""
        return login_logic(login_data)


@blp.route("/logout")
class Logout(MethodView):
    @jwt_required()
    def post(self):
        """Revoke the current access token."""
        return logout_logic(get_jwt()), 200


@blp.route("/me")
class Me(MethodView):
    @jwt_required()
    def get(self):
        """Profile behind the current token."""
        profile = require_profile()
        return {"profile": profile.to_dict()}, 200
