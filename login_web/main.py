"""
Login Web App. Passkey login through the identity provider (OAuth2 authorization code + PKCE).
GET /, /login, /start-login, /auth/callback, /logout, /me. Port 8000.
"""
import html
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from login_web.audit import get_client_ip
from login_web.config import (
    LOGIN_PATH,
    SESSION_HTTPS_ONLY,
    SESSION_MAX_AGE,
    SESSION_SECRET_KEY,
    ProviderConfig,
    get_provider_config,
)
from login_web.database import get_db, init_db
from login_web.errors import ConfigError, SessionWriteFailure, Unauthenticated
from login_web.handshake import AuthHandshakeController
from login_web.models import User
from login_web.resolver import require_user
from login_web.session import UserSession, get_user_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration (fail fast) and create tables on startup."""
    get_provider_config()
    if not SESSION_SECRET_KEY:
        raise ConfigError("Missing required configuration: SESSION_SECRET_KEY")
    init_db()
    yield


app = FastAPI(title="Login Web", version="0.1.0", lifespan=lifespan)
# same_site=lax: the cookie must ride along on the provider's top-level redirect back to us
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET_KEY,
    session_cookie="login_session",
    max_age=SESSION_MAX_AGE,
    same_site="lax",
    https_only=SESSION_HTTPS_ONLY,
)


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return RedirectResponse(url=LOGIN_PATH, status_code=302)


def get_controller(
    request: Request,
    db: Session = Depends(get_db),
    config: ProviderConfig = Depends(get_provider_config),
) -> AuthHandshakeController:
    return AuthHandshakeController(config, db, ip=get_client_ip(request))


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "login_web"}


@app.get("/", response_class=HTMLResponse)
def home(user: User = Depends(require_user)):
    """Main entry point; requires login."""
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Home</title></head>
<body>
  <h1>Welcome, {html.escape(user.username)}</h1>
  <p><a href="/logout">Log out</a></p>
</body>
</html>"""
    )


@app.get("/login", response_class=HTMLResponse)
def login_page():
    return HTMLResponse(
        """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Log in</title></head>
<body>
  <h1>Log in</h1>
  <form method="get" action="/start-login">
    <button type="submit">Log in with passkey</button>
  </form>
</body>
</html>"""
    )


@app.get("/start-login")
def start_login(
    session: UserSession = Depends(get_user_session),
    controller: AuthHandshakeController = Depends(get_controller),
):
    """
    Store state + PKCE verifier in the session, then redirect to the provider /authorize.
    If the session cannot be written the browser is not sent to the provider.
    """
    try:
        url = controller.initiate(session)
    except SessionWriteFailure as e:
        logger.error("Login initiation aborted: %s", e)
        return HTMLResponse(
            """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Error</title></head>
<body>
  <h1>Error</h1>
  <p>Could not start login. Please try again.</p>
  <p><a href="/login">Log in</a></p>
</body>
</html>""",
            status_code=500,
        )
    return RedirectResponse(url=url, status_code=302)


@app.get("/auth/callback")
def auth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    session: UserSession = Depends(get_user_session),
    controller: AuthHandshakeController = Depends(get_controller),
):
    """
    Provider redirects here with ?code=...&state=... (or ?error=...). Always answers with a
    redirect; failure detail goes to the log and audit table, never to the browser.
    """
    outcome = controller.handle_callback(
        session, code, state, error=error, error_description=error_description
    )
    if not outcome.ok:
        logger.info("Login rejected (%s): %s", type(outcome.error).__name__, outcome.error)
    return RedirectResponse(url=outcome.redirect_to, status_code=302)


@app.get("/logout")
def logout(
    session: UserSession = Depends(get_user_session),
    controller: AuthHandshakeController = Depends(get_controller),
):
    return RedirectResponse(url=controller.logout(session), status_code=302)


@app.get("/me")
def me(user: User = Depends(require_user)):
    """Current user as JSON."""
    return {"id": user.id, "username": user.username}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "login_web.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
