import httpx
import logging
from typing import Optional
from config import settings
from storefront.exceptions import AuthError
from storefront.models.session import AdminSession

logger = logging.getLogger(__name__)

class SupabaseAuthClient:
    """Email/password sign-in against the backend's GoTrue auth endpoints"""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.client = client or httpx.AsyncClient(timeout=10.0)

    def _headers(self, access_token: Optional[str] = None) -> dict:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def sign_in_with_password(self, email: str, password: str) -> AdminSession:
        try:
            response = await self.client.post(
                f"{self.base_url}/auth/v1/token",
                params={"grant_type": "password"},
                headers=self._headers(),
                json={"email": email, "password": password},
            )
        except httpx.HTTPError as e:
            logger.error(f"[Auth] Sign-in request failed: {e}")
            raise AuthError("Auth service unavailable") from e

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                body = {}
            message = body.get("error_description") or body.get("msg") or "Invalid login credentials"
            logger.warning(f"[Auth] Sign-in rejected for {email}: {message}")
            raise AuthError(message)

        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[Auth] Unreadable sign-in response: {e!r}")
            raise AuthError("Unexpected response from auth service") from e

        return AdminSession(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            email=(data.get("user") or {}).get("email", email),
        )

    async def sign_out(self, access_token: str):
        try:
            response = await self.client.post(
                f"{self.base_url}/auth/v1/logout",
                headers=self._headers(access_token),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[Auth] Sign-out failed: {e}")
            raise AuthError("Sign-out failed") from e

    async def close(self):
        await self.client.aclose()
