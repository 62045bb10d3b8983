import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class PocketbaseError(Exception):
    """Custom exception for Pocketbase errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class PocketbaseService:
    """Async client for the Pocketbase REST API with admin authentication."""

    def __init__(
        self,
        base_url: str,
        admin_email: Optional[str] = None,
        admin_password: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._admin_email = admin_email
        self._admin_password = admin_password
        self._transport = transport
        self._timeout = timeout
        self._admin_token: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def _ensure_admin_auth(self) -> Optional[str]:
        """
        Authenticate as admin and get token.

        Returns the admin token or None if authentication fails.
        """
        if self._admin_token:
            return self._admin_token

        if not self._admin_email or not self._admin_password:
            logger.debug("No admin credentials configured")
            return None

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/api/collections/_superusers/auth-with-password",
                    json={"identity": self._admin_email, "password": self._admin_password},
                )

                if response.status_code == 200:
                    self._admin_token = response.json().get("token")
                    logger.info("Pocketbase admin authentication successful")
                    return self._admin_token

                logger.warning("Pocketbase admin auth failed: %s", response.text)
                return None

        except httpx.RequestError as e:
            logger.warning("Failed to authenticate as admin: %s", e)
            return None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make an authenticated HTTP request to Pocketbase."""
        url = f"{self.base_url}{path}"

        headers = {}
        token = await self._ensure_admin_auth()
        if token:
            headers["Authorization"] = token

        async with self._client() as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    json=json,
                    params=params,
                    headers=headers,
                )

                if response.status_code >= 400:
                    error_data = response.json() if response.text else {}
                    error_msg = error_data.get("message", response.text or "Unknown error")
                    raise PocketbaseError(error_msg, response.status_code)

                if response.text:
                    return response.json()
                return None

            except httpx.RequestError as e:
                raise PocketbaseError(f"Connection error: {str(e)}")

    # ==================== Health ====================

    async def health_check(self) -> dict:
        """Check if Pocketbase is healthy."""
        return await self._request("GET", "/api/health")

    # ==================== Records ====================

    async def list_records(
        self,
        collection: str,
        filter: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> dict:
        """Get list of records from a collection."""
        params = {"page": page, "perPage": per_page}
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort

        return await self._request("GET", f"/api/collections/{collection}/records", params=params)

    async def first_record(self, collection: str, filter: str) -> Optional[dict]:
        """First record matching a filter, or None."""
        result = await self.list_records(collection, filter=filter, per_page=1)
        items = result.get("items", []) if result else []
        return items[0] if items else None

    async def get_record(self, collection: str, record_id: str) -> dict:
        """Get a single record by ID."""
        return await self._request("GET", f"/api/collections/{collection}/records/{record_id}")

    async def create_record(self, collection: str, data: dict) -> dict:
        """Create a new record in a collection."""
        return await self._request("POST", f"/api/collections/{collection}/records", json=data)

    async def update_record(self, collection: str, record_id: str, data: dict) -> dict:
        """
        Update an existing record.

        Number fields accept Pocketbase modifiers, e.g. {"count+": 1}
        increments server-side.
        """
        return await self._request("PATCH", f"/api/collections/{collection}/records/{record_id}", json=data)
