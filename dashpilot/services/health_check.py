"""Site health checks against the DashPilot WordPress plugin endpoint."""

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.exceptions import WordPressApiError
from dashpilot.models.site import Site
from dashpilot.models.site_check import SiteCheck
from dashpilot.services.metrics import health_checks_total
from dashpilot.services.settings_service import SettingsService
from dashpilot.utils.encryption import decrypt_value

logger = logging.getLogger(__name__)

HEALTH_ENDPOINT_PATH = "/wp-json/dashpilot/v1/health"
DEFAULT_TIMEOUT_SECONDS = 10
HEALTH_CACHE_TTL_SECONDS = 300


class HealthCache:
    """In-memory cache of normalized health payloads with TTL."""

    def __init__(self, ttl_seconds: int = HEALTH_CACHE_TTL_SECONDS) -> None:
        self._cache: dict[str, dict[str, Any]] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key: str) -> dict[str, Any] | None:
        """Get a cached payload, or None if missing or expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if datetime.now(UTC) > entry["expires_at"]:
            del self._cache[key]
            return None

        return entry["payload"]

    def set(self, key: str, payload: dict[str, Any]) -> None:
        self._cache[key] = {
            "payload": payload,
            "expires_at": datetime.now(UTC) + self._ttl,
        }

    def clear(self) -> None:
        self._cache.clear()


# Global health payload cache (5 minute TTL)
_health_cache = HealthCache()


class WordPressService:
    """Fetches remote health data from managed WordPress sites."""

    @staticmethod
    def health_endpoint(site: Site) -> str:
        return (site.wp_api_url or "").rstrip("/") + HEALTH_ENDPOINT_PATH

    @staticmethod
    def normalize(payload: dict[str, Any]) -> dict[str, Any]:
        """Keep the fields DashPilot understands, with defaults for missing ones."""
        return {
            "status": payload.get("status", "unknown"),
            "score": payload.get("score"),
            "plugins": payload.get("plugins", []),
            "themes": payload.get("themes", []),
            "php_version": payload.get("php_version"),
            "wp_version": payload.get("wp_version"),
            "last_backup": payload.get("last_backup"),
            "response_time": payload.get("response_time"),
        }

    @staticmethod
    async def fetch_health_data(
        site: Site,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """Fetch and normalize the health payload for a site.

        Successful responses are cached per site for five minutes.

        Args:
            site: Site to query
            timeout: Request timeout in seconds
            client: Optional httpx client
            use_cache: Return a cached payload when one is still fresh

        Returns:
            Normalized health payload

        Raises:
            WordPressApiError: If the site has no API URL, the request fails,
                or the response is not a JSON object
        """
        if not site.wp_api_url:
            raise WordPressApiError("WordPress API URL missing for site.")

        cache_key = f"wp.{site.id}.health"
        if use_cache:
            cached = _health_cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for site {site.id} health data")
                return cached

        endpoint = WordPressService.health_endpoint(site)
        headers = {"Accept": "application/json"}
        if site.wp_api_key:
            try:
                headers["Authorization"] = f"Bearer {decrypt_value(site.wp_api_key)}"
            except ValueError as e:
                raise WordPressApiError(f"Cannot decrypt WordPress API key: {e}")

        logger.debug(f"WordPress request: GET {endpoint} (site {site.id})")
        start_time = time.monotonic()

        try:
            if client is None:
                async with httpx.AsyncClient(timeout=timeout) as http:
                    response = await http.get(endpoint, headers=headers)
            else:
                response = await client.get(endpoint, headers=headers, timeout=timeout)
        except httpx.HTTPError as e:
            logger.warning(f"WordPress request to {endpoint} failed for site {site.id}: {e}")
            raise WordPressApiError(f"WordPress API request failed: {e}")

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.debug(
            f"WordPress response: {response.status_code} from {endpoint} "
            f"(site {site.id}, {duration_ms}ms)"
        )

        if response.is_error:
            raise WordPressApiError(
                f"WordPress API request failed with status {response.status_code}",
                response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            raise WordPressApiError("Unexpected WordPress API payload.")

        data = WordPressService.normalize(payload)
        _health_cache.set(cache_key, data)
        return data


class HealthCheckService:
    """Runs a health check for a site and persists the result."""

    @staticmethod
    async def check_site(
        db: AsyncSession,
        site_id: int,
        client: httpx.AsyncClient | None = None,
        use_cache: bool = True,
    ) -> SiteCheck | None:
        """Check one site and record a performance SiteCheck.

        Args:
            db: Database session
            site_id: Site to check
            client: Optional httpx client
            use_cache: Allow a cached health payload

        Returns:
            The created SiteCheck, or None if the site no longer exists

        Raises:
            WordPressApiError: If the health endpoint cannot be queried
        """
        site = await db.get(Site, site_id)
        if site is None:
            logger.warning(f"Skipping health check: site {site_id} not found")
            return None

        logger.info(f"Health check started for site {site.id} ({site.name})")

        timeout = await SettingsService.get_int(
            db, "wordpress_timeout", default=DEFAULT_TIMEOUT_SECONDS
        )

        try:
            payload = await WordPressService.fetch_health_data(
                site, timeout=timeout, client=client, use_cache=use_cache
            )
        except WordPressApiError as e:
            health_checks_total.labels(result="error").inc()
            logger.error(f"Health check failed for site {site.id}: {e}")
            raise

        status = payload.get("status") or "unknown"
        score = payload.get("score")
        if score is None:
            score = site.health_score
        try:
            score = int(score)
        except (TypeError, ValueError):
            score = site.health_score

        now = datetime.now(UTC)
        check = SiteCheck(
            site_id=site.id,
            check_type=SiteCheck.TYPE_PERFORMANCE,
            status=SiteCheck.STATUS_PASS if status == "ok" else SiteCheck.STATUS_WARNING,
            response_time=payload.get("response_time"),
            details=payload,
            checked_at=now,
        )
        db.add(check)

        site.health_score = score
        site.last_checked_at = now

        await db.commit()
        await db.refresh(check)

        health_checks_total.labels(result=check.status).inc()
        logger.info(f"Health check completed for site {site.id}: status={status}, score={score}")
        return check
