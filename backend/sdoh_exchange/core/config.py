from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "SDOH Exchange EHR App"
    CBRO_APP_NAME: str = "SDOH Exchange CBRO App"
    VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production-use-strong-random-key"
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60
    SESSION_COOKIE_NAME: str = "SESSION"
    STATE_EXPIRE_MINUTES: int = 10

    DATABASE_URL: str = "sqlite:///./sdoh_exchange.db"

    # EHR FHIR server. The open endpoint is used by background jobs that run without a user token.
    EHR_FHIR_SERVER_URI: Optional[str] = None
    EHR_OPEN_FHIR_SERVER_URI: Optional[str] = None
    FHIR_TIMEOUT: int = 30

    # SMART-on-FHIR client registration
    OAUTH_CLIENT_ID: Optional[str] = None
    OAUTH_CLIENT_SECRET: Optional[str] = None
    # scope 'launch/patient' is needed for a standalone launch
    OAUTH_SCOPE: str = "patient/*.*,user/*.read,openid,fhirUser,launch,launch/patient"
    OAUTH_AUTHORIZATION_URI: str = "https://auth.logicahealth.org/authorize"
    OAUTH_TOKEN_URI: str = "https://auth.logicahealth.org/token"
    OAUTH_USER_INFO_URI: Optional[str] = "https://auth.logicahealth.org/userinfo"
    OAUTH_JWK_SET_URI: Optional[str] = "https://auth.logicahealth.org/jwk"
    OAUTH_REDIRECT_URI: Optional[str] = None

    # API docs
    SWAGGER_TITLE: str = "SDOH Exchange EHR App API"
    CONTACT_NAME: str = "Gravity Project"
    CONTACT_URL: str = "https://www.hl7.org/gravity/"

    # Task status synchronization with CBRO servers
    TASK_POLLING_ENABLED: bool = True
    TASK_POLLING_DELAY_SECONDS: float = 10.0

    # CBRO app
    CBRO_FHIR_SERVER_URI: Optional[str] = None
    CBRO_FHIR_TOKEN: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"


settings = Settings()
