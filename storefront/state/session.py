import hmac
import logging
from enum import Enum
from typing import Callable, List, Optional
from storefront.models.session import AdminSession

logger = logging.getLogger(__name__)

class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"

Listener = Callable[[AuthEvent, Optional[AdminSession]], None]

class SessionContext:
    """
    Process-wide admin session.

    Components that care about sign-in state subscribe here instead of
    asking the auth service themselves. Call ``init`` once at startup and
    ``teardown`` at shutdown.
    """

    def __init__(self, auth_client):
        self.auth_client = auth_client
        self.current: Optional[AdminSession] = None
        self._listeners: List[Listener] = []
        self._started = False

    def init(self):
        self._started = True
        self._emit(AuthEvent.INITIAL_SESSION)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent):
        for listener in list(self._listeners):
            try:
                listener(event, self.current)
            except Exception as e:
                logger.error(f"[Auth] Session listener failed on {event.value}: {e}")

    async def sign_in(self, email: str, password: str) -> AdminSession:
        self.current = await self.auth_client.sign_in_with_password(email, password)
        logger.info(f"[Auth] Admin signed in: {self.current.email}")
        self._emit(AuthEvent.SIGNED_IN)
        return self.current

    async def sign_out(self):
        if self.current is None:
            return
        session, self.current = self.current, None
        try:
            await self.auth_client.sign_out(session.access_token)
        finally:
            logger.info(f"[Auth] Admin signed out: {session.email}")
            self._emit(AuthEvent.SIGNED_OUT)

    def is_authorized(self, access_token: Optional[str]) -> bool:
        if self.current is None or not access_token:
            return False
        return hmac.compare_digest(self.current.access_token.encode(), access_token.encode())

    async def teardown(self):
        self._listeners.clear()
        self.current = None
        if self._started:
            await self.auth_client.close()
            self._started = False
