# flowershop/middleware/db_middleware.py

from starlette.types import ASGIApp, Receive, Scope, Send
from flowershop.utils.database import AsyncSessionLocal


class DBSessionMiddleware:
    """Открывает AsyncSession на каждый HTTP-запрос: request.state.db."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        session = AsyncSessionLocal()
        state["db"] = session
        try:
            await self.app(scope, receive, send)
        finally:
            # незакоммиченное (например, после HTTPException) откатывается при закрытии
            await session.close()
