from functools import lru_cache
from typing import Any, Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tutor_backend.core.path_conf import BASE_PATH


class Settings(BaseSettings):
    """全局配置"""

    model_config = SettingsConfigDict(
        env_file=f'{BASE_PATH}/.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True,
    )

    # .env 当前环境
    ENVIRONMENT: Literal['dev', 'prod'] = 'dev'

    # FastAPI
    FASTAPI_API_V1_PATH: str = '/api/v1'
    FASTAPI_TITLE: str = 'TutorBackend'
    FASTAPI_DESCRIPTION: str = 'Family subscription billing service'
    FASTAPI_DOCS_URL: str | None = '/docs'
    FASTAPI_REDOC_URL: str | None = '/redoc'
    FASTAPI_OPENAPI_URL: str | None = '/openapi'

    # .env 数据库
    DATABASE_HOST: str = 'localhost'
    DATABASE_PORT: int = 5432
    DATABASE_USER: str = 'postgres'
    DATABASE_PASSWORD: str = ''

    # 数据库
    DATABASE_ECHO: bool | Literal['debug'] = False
    DATABASE_POOL_ECHO: bool | Literal['debug'] = False
    DATABASE_SCHEMA: str = 'tutor_backend'
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # .env Redis
    REDIS_HOST: str = 'localhost'
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ''
    REDIS_USERNAME: str = 'default'
    REDIS_DATABASE: int = 0

    # Redis
    REDIS_TIMEOUT: int = 5

    # 日志
    LOG_LEVEL: str = 'INFO'

    # --------------------------------------------------------------------------
    # [Billing & Stripe Configuration]
    # Family subscriptions: one first-child price plus an additional-child price
    # --------------------------------------------------------------------------

    # Stripe API Keys
    STRIPE_SECRET_KEY: str = ''  # Stripe secret key (sk_...)
    STRIPE_PUBLISHABLE_KEY: str = ''  # Stripe publishable key (pk_...)
    STRIPE_WEBHOOK_SECRET: str = ''  # Webhook signing secret (whsec_...)

    # Stripe SDK behaviour
    STRIPE_MAX_NETWORK_RETRIES: int = 2
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_WEBHOOK_MAX_BODY_BYTES: int = 256 * 1024
    STRIPE_WEBHOOK_DEDUP_TTL_SECONDS: int = 24 * 60 * 60
    STRIPE_WEBHOOK_REDIS_PREFIX: str = 'stripe:webhook:processed'
    STRIPE_WEBHOOK_PROCESSING_WINDOW_SECONDS: int = 5 * 60  # stale processing rows may be retried

    # Circuit breaker
    STRIPE_CIRCUIT_FAILURE_THRESHOLD: int = 5
    STRIPE_CIRCUIT_RECOVERY_TIMEOUT: int = 60

    # Plan rows in subscription_plans
    BILLING_FREE_PLAN_NAME: str = 'free'
    BILLING_PREMIUM_PLAN_NAME: str = 'premium'

    # Customers without an email get {username}@<domain>
    BILLING_PLACEHOLDER_EMAIL_DOMAIN: str = 'tutor.local'

    @property
    def BILLING_ENABLED(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @model_validator(mode='before')
    @classmethod
    def check_env(cls, values: Any) -> Any:
        """检查环境变量"""
        if values.get('ENVIRONMENT') == 'prod':
            # FastAPI
            values['FASTAPI_OPENAPI_URL'] = None
            values['FASTAPI_DOCS_URL'] = None
            values['FASTAPI_REDOC_URL'] = None

            # Stripe is mandatory in production
            if not values.get('STRIPE_SECRET_KEY'):
                raise ValueError('STRIPE_SECRET_KEY is required in production')

        return values


@lru_cache
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings()


# 创建全局配置实例
settings = get_settings()
