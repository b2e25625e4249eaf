"""Identity resolution: anonymous access tokens and the admin password."""

import hashlib
import hmac
import uuid

from ..constants import ResCode
from ..utils.logging import get_logger

logger = get_logger("threadline.services.identity")


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def anonymous_sign_in(event: dict) -> str:
    """Return the caller's access token, issuing a fresh one when absent."""
    token = event.get("accessToken")
    if token:
        return str(token)
    return uuid.uuid4().hex


def is_admin(access_token: str, config: dict) -> bool:
    """True when the token hashes to the stored admin password hash.

    Stored hashes are md5 hex digests so existing deployments' passwords
    keep working.
    """
    admin_pass = config.get("ADMIN_PASS")
    if not admin_pass or not access_token:
        return False
    return hmac.compare_digest(md5_hex(access_token), str(admin_pass))


def login(password: str | None, config: dict) -> dict:
    if not config:
        return {"code": ResCode.CONFIG_NOT_EXIST, "message": "No configuration found"}
    admin_pass = config.get("ADMIN_PASS")
    if not admin_pass:
        return {"code": ResCode.PASS_NOT_EXIST, "message": "Admin password is not set"}
    if not hmac.compare_digest(md5_hex(password or ""), str(admin_pass)):
        logger.warning("admin_login_failed")
        return {"code": ResCode.PASS_NOT_MATCH, "message": "Wrong password"}
    logger.info("admin_login")
    return {"code": ResCode.SUCCESS}


async def set_password(password: str | None, config: dict, caller_is_admin: bool, config_store) -> dict:
    """Store ``md5(password)`` as the admin password.

    The first password can be set by anyone; replacing an existing one needs
    an admin session.
    """
    if config.get("ADMIN_PASS") and not caller_is_admin:
        return {"code": ResCode.PASS_EXIST, "message": "Log in before changing the password"}
    await config_store.write({"ADMIN_PASS": md5_hex(password or "")})
    logger.info("admin_password_set")
    return {"code": ResCode.SUCCESS}


def password_status(config: dict, version: str) -> dict:
    return {
        "code": ResCode.SUCCESS,
        "status": bool(config.get("ADMIN_PASS")),
        "credentials": bool(config.get("CREDENTIALS")),
        "version": version,
    }
