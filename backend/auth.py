from passlib.context import CryptContext
import jwt
from datetime import datetime, timedelta, timezone
import logging
import secrets
import os

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "canteen_session"

# bcrypt backends that passlib cannot drive fall back to pbkdf2_sha256
try:
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
    pwd_context.hash("test")
    logger.info("bcrypt initialized")
except Exception as e:
    logger.warning(f"bcrypt is not available: {e}, using pbkdf2_sha256")
    pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_secret_key():
    env_key = os.getenv("SECRET_KEY")
    if env_key:
        return env_key

    key_file = ".secret_key"
    if os.path.exists(key_file):
        try:
            with open(key_file, "r", encoding='utf-8') as f:
                return f.read().strip()
        except UnicodeDecodeError:
            logger.warning("Could not read the secret key file, generating a new one")
            os.remove(key_file)

    new_key = secrets.token_urlsafe(32)
    with open(key_file, "w", encoding='utf-8') as f:
        f.write(new_key)
    if os.name != 'nt':
        os.chmod(key_file, 0o600)
    logger.info("Generated a new SECRET_KEY")
    return new_key


SECRET_KEY = get_secret_key()
ALGORITHM = "HS256"
SESSION_EXPIRE_MINUTES = int(os.getenv("SESSION_EXPIRE_MINUTES", "1440"))
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "0") == "1"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_session_token(user_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=SESSION_EXPIRE_MINUTES)
    return jwt.encode({"user_id": user_id, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def read_session_token(token: str):
    """Return the ``user_id`` stored in a session token, or None if it is
    missing, expired or tampered with."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        return None
    return user_id


def set_session_cookie(response, user_id: int):
    response.set_cookie(
        SESSION_COOKIE_NAME,
        create_session_token(user_id),
        max_age=SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )


def clear_session_cookie(response):
    response.delete_cookie(SESSION_COOKIE_NAME)
