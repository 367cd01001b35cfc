from typing import List
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra='ignore', populate_by_name=True)

    # Supabase settings (server-side names first, client-prefixed names as fallback)
    supabase_url: str = Field('', validation_alias=AliasChoices('SUPABASE_URL', 'VITE_SUPABASE_URL'))
    supabase_key: str = Field('', validation_alias=AliasChoices('SUPABASE_ANON_KEY', 'SUPABASE_KEY', 'VITE_SUPABASE_ANON_KEY'))
    allowed_email_domains: str = Field('', validation_alias=AliasChoices('ALLOWED_EMAIL_DOMAINS', 'VITE_ALLOWED_EMAIL_DOMAINS'))

    # Voiceflow outbound call provider (server-side secrets)
    voiceflow_call_api_url: str = Field('', validation_alias=AliasChoices('VOICEFLOW_CALL_API_URL'))
    voiceflow_call_api_key: str = Field('', validation_alias=AliasChoices('VOICEFLOW_CALL_API_KEY'))

    # Voiceflow NLP endpoint for voice commands
    voiceflow_api_url: str = Field('', validation_alias=AliasChoices('VOICEFLOW_API_URL', 'VITE_VOICEFLOW_API_URL'))
    voiceflow_api_key: str = Field('', validation_alias=AliasChoices('VOICEFLOW_API_KEY', 'VITE_VOICEFLOW_API_KEY'))

    # Base URL of the deployment hosting /api/start-call
    call_proxy_url: str = Field('http://localhost:8000', validation_alias=AliasChoices('CALL_PROXY_URL', 'VERCEL_URL'))

    # Make.com low stock webhook
    make_webhook_url: str = Field('', validation_alias=AliasChoices('MAKE_WEBHOOK_URL', 'VITE_MAKE_WEBHOOK_URL'))

    # OpenAI settings
    openai_api_key: str = Field('', validation_alias=AliasChoices('OPENAI_API_KEY', 'VITE_OPENAI_API_KEY'))
    openai_model: str = Field('gpt-4o-mini', validation_alias=AliasChoices('OPENAI_MODEL'))

    inventory_unit_value: int = Field(75, validation_alias=AliasChoices('INVENTORY_UNIT_VALUE'))
    log_level: str = Field('INFO', validation_alias=AliasChoices('LOG_LEVEL'))

    @property
    def store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def call_provider_configured(self) -> bool:
        return bool(self.voiceflow_call_api_url and self.voiceflow_call_api_key)

    @property
    def allowed_domains(self) -> List[str]:
        return [
            domain.strip().lower().lstrip('@')
            for domain in self.allowed_email_domains.split(',')
            if domain.strip()
        ]

def get_settings() -> Settings:
    return Settings()
