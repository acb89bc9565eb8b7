import logging

from identity_service.core.config import settings

_initialized = False


def init_monitoring() -> None:
    global _initialized
    if _initialized:
        return
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
            send_default_pii=False,
            environment=settings.ENV,
            release=f"{settings.APP_NAME}@{settings.ENV}",
        )
        logging.getLogger(__name__).info("Sentry initialized")
    _initialized = True
