from fastapi import Depends

from src.server.settings.config import Settings, settings
from src.services.notifications import NotificationSender, ResendSender, UnconfiguredSender
from src.services.order_token import OrderTokenCodec, SettingsSecret


def get_settings() -> Settings:
    return settings


def get_codec(cfg: Settings = Depends(get_settings)) -> OrderTokenCodec:
    return OrderTokenCodec(SettingsSecret(cfg))


def get_sender(cfg: Settings = Depends(get_settings)) -> NotificationSender:
    if not cfg.resend_api_key:
        return UnconfiguredSender()
    return ResendSender(cfg.resend_api_key, cfg.from_email)
