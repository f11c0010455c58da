import hmac

from fastapi import Header, HTTPException, status

from config.env import ADMIN_API_KEY, CRON_SECRET


def _secret_matches(expected: str, received: str | None) -> bool:
    return bool(received) and hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


async def require_cron_secret(x_cron_secret: str | None = Header(default=None)):
    if not CRON_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret not configured",
        )
    if not _secret_matches(CRON_SECRET, x_cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


async def require_admin_key(x_admin_key: str | None = Header(default=None)):
    if not ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin key not configured",
        )
    if not _secret_matches(ADMIN_API_KEY, x_admin_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access only",
        )
