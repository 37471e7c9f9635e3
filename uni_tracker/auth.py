"""Session bootstrap against the backend's auth endpoints."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt

from .backend import BackendClient, BackendError
from .models import Session
from .state_store import StateRepository

logger = logging.getLogger(__name__)

AUTH_MESSAGES = {
    "Invalid login credentials": "Correo o contraseña incorrectos",
    "User already registered": "Este correo ya está registrado",
    "Password should be at least 6 characters": "La contraseña debe tener al menos 6 caracteres",
    "Unable to validate email address: invalid format": "El formato del correo no es válido",
}

SIGNUP_CONFIRM_MESSAGE = "¡Cuenta creada! Revisa tu correo para confirmar tu cuenta."


class AuthError(Exception):
    """Authentication failed; the message is ready to show to the user."""


def translate_auth_message(message: str) -> str:
    """Map a backend auth error message to its Spanish display text."""
    return AUTH_MESSAGES.get(message, message)


def decode_token_claims(access_token: str) -> Dict[str, Any]:
    """
    Read the claims of an access token.

    The signature is not verified here; the backend verifies every request.

    Raises:
        AuthError: If the token is not a decodable JWT.
    """
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Token de sesión inválido: {e}") from e


def session_from_payload(payload: Dict[str, Any]) -> Session:
    """Build a Session from a token endpoint response."""
    access_token = payload.get("access_token")
    if not access_token:
        raise AuthError("El servidor no devolvió una sesión")

    claims = decode_token_claims(access_token)
    user = payload.get("user") or {}
    user_id = user.get("id") or claims.get("sub")
    if not user_id:
        raise AuthError("La sesión no contiene un usuario")

    expires_at = payload.get("expires_at") or claims.get("exp")
    if expires_at is None and payload.get("expires_in"):
        expires_at = int(datetime.now(timezone.utc).timestamp()) + int(payload["expires_in"])

    return Session(
        access_token=access_token,
        refresh_token=payload.get("refresh_token"),
        user_id=str(user_id),
        email=user.get("email") or claims.get("email"),
        expires_at=int(expires_at) if expires_at is not None else None,
    )


class AuthService:
    """Signs users in and out and keeps the session in local state."""

    def __init__(self, client: BackendClient, state: StateRepository):
        self.client = client
        self.state = state

    def _store(self, session: Session) -> Session:
        self.state.put_session(session)
        self.client.set_access_token(session.access_token)
        return session

    def sign_in(self, email: str, password: str) -> Session:
        """
        Sign in with email and password.

        Raises:
            AuthError: With a translated message when the backend rejects the login.
        """
        try:
            payload = self.client.auth_post(
                "token",
                {"email": email, "password": password},
                params={"grant_type": "password"},
            )
        except BackendError as e:
            raise AuthError(translate_auth_message(e.message)) from e
        session = session_from_payload(payload)
        logger.info(f"Signed in as {session.email or session.user_id}")
        return self._store(session)

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        """
        Create an account.

        Returns:
            The new session when the backend issues one immediately, or None when
            email confirmation is required.
        """
        try:
            payload = self.client.auth_post("signup", {"email": email, "password": password})
        except BackendError as e:
            raise AuthError(translate_auth_message(e.message)) from e
        if payload.get("access_token"):
            return self._store(session_from_payload(payload))
        logger.info(f"Account created for {email}; confirmation pending")
        return None

    def sign_out(self) -> None:
        """Revoke the session on the backend (best effort) and forget it locally."""
        session = self.state.get_session()
        if session:
            self.client.set_access_token(session.access_token)
            try:
                self.client.auth_post("logout")
            except BackendError as e:
                logger.warning(f"Backend logout failed, clearing local session anyway: {e}")
        self.state.clear_session()
        self.client.set_access_token(None)

    def refresh(self, session: Session) -> Session:
        if not session.refresh_token:
            raise AuthError("La sesión expiró; inicia sesión nuevamente")
        try:
            payload = self.client.auth_post(
                "token",
                {"refresh_token": session.refresh_token},
                params={"grant_type": "refresh_token"},
            )
        except BackendError as e:
            raise AuthError("La sesión expiró; inicia sesión nuevamente") from e
        logger.debug("Access token refreshed")
        return self._store(session_from_payload(payload))

    def current_session(self, now: Optional[datetime] = None) -> Optional[Session]:
        """
        Load the persisted session, refreshing it if the access token expired.

        Returns None when nobody is signed in.
        """
        session = self.state.get_session()
        if session is None:
            return None
        if session.is_expired(now):
            session = self.refresh(session)
        self.client.set_access_token(session.access_token)
        return session

    def require_session(self) -> Session:
        session = self.current_session()
        if session is None:
            raise AuthError("No has iniciado sesión. Usa `uni-tracker login`.")
        return session
