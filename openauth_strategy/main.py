"""
Example host app wiring OpenAuthStrategy into FastAPI.
GET /login starts the flow; GET /callback completes it. Port 8000.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from openauth_strategy.errors import OAuth2StrategyError
from openauth_strategy.openauth import OpenAuthStrategy, VerifyContext
from openauth_strategy.redirect import RedirectSignal

logger = logging.getLogger(__name__)


async def verify_user(context: VerifyContext) -> dict:
    """Resolve the access token's subject into this app's user."""
    result = await context.client.verify(context.tokens.access)
    return {"type": result.subject.type, "properties": result.subject.properties}


strategy = OpenAuthStrategy(verify_user)

app = FastAPI(title="OpenAuth Strategy Example", version="0.1.0")


@app.exception_handler(OAuth2StrategyError)
async def oauth_error_handler(request: Request, exc: OAuth2StrategyError):
    logger.info("Login failed (%s): %s", exc.error, exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "openauth_strategy"}


async def _authenticate(request: Request):
    try:
        user = await strategy.authenticate(request)
    except RedirectSignal as exc:
        return exc.response
    response = JSONResponse({"message": "Login success", "user": user})
    return strategy.consume_state(request, response)


@app.get("/login")
async def login(request: Request):
    """Redirect to the issuer; also accepts the callback if the issuer is pointed here."""
    return await _authenticate(request)


@app.get("/callback")
async def callback(request: Request):
    """Issuer redirects here with ?code&state (or ?error)."""
    return await _authenticate(request)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "openauth_strategy.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
