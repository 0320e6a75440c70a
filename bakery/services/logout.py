import logging
from datetime import datetime

from bakery import db
from bakery.models import TokenBlocklist

logger = logging.getLogger(__name__)


def logout_logic(jwt_payload):
    """Revoke the token in ``jwt_payload`` until it would have expired anyway."""
    revoked = TokenBlocklist(jti=jwt_payload["jti"],
                             expires_at=datetime.fromtimestamp(jwt_payload["exp"]))
    db.session.add(revoked)
    # Expired tokens fail verification on their own
    TokenBlocklist.query.filter(TokenBlocklist.expires_at < datetime.now()) \
        .delete(synchronize_session=False)
    db.session.commit()

    logger.info(f"Profile {jwt_payload.get('sub')} logged out",
                extra={'event': 'profile_logged_out', 'user_id': jwt_payload.get('sub')})
    return {"message": "Logged out successfully"}


def is_token_revoked(jwt_payload):
    return db.session.query(TokenBlocklist.id) \
        .filter_by(jti=jwt_payload["jti"]).first() is not None
