from flask import Flask, jsonify
from flask_smorest import Api
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from config import Config


db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()


def create_app(config_class=Config):

    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    from . import models  # noqa: F401  registers the tables on db.metadata
    from .controllers.auth import blp as AuthBlp
    from .controllers.products import blp as ProductBlp
    from .controllers.availability import blp as AvailabilityBlp
    from .controllers.stock import blp as StockBlp
    from .controllers.reservations import blp as ReservationBlp
    from .controllers.admin_reservations import blp as AdminReservationBlp
    from .services.logout import is_token_revoked
    from .middleware import init_middleware


    @jwt.token_in_blocklist_loader
    def check_if_token_in_blocklist(jwt_header, jwt_payload):
        return is_token_revoked(jwt_payload)


    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "message": "The token has expired.",
            "error": "token_expired"
        }), 401


    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            "message": "Signature verification failed.",
            "error": "invalid_token"
        }), 401


    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            "description": "Request doesn't contain an access token.",
            "error": "authorization_required"
        }), 401


    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "message": "The token has been revoked.",
            "error": "token_revoked"
        }), 401


    api = Api(app)
    api.register_blueprint(AuthBlp)
    api.register_blueprint(ProductBlp)
    api.register_blueprint(AvailabilityBlp)
    api.register_blueprint(StockBlp)
    api.register_blueprint(ReservationBlp)
    api.register_blueprint(AdminReservationBlp)

    # Registered after Api so our error payloads replace flask-smorest's defaults
    init_middleware(app)


    @app.route('/')
    def home():
        return jsonify({"message": "Welcome to the Bakery Storefront API!"})

    return app
