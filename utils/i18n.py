"""Система локализации (i18n)"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

# По умолчанию русский язык
DEFAULT_LOCALE = "ru"
LOCALES_DIR = Path(__file__).parent.parent / "locales"


class I18n:
    """Менеджер локализации"""

    _instance: Optional["I18n"] = None
    _translations: Dict[str, dict] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_translations()
        return cls._instance

    def _load_translations(self):
        """Загрузить все переводы"""
        try:
            for locale_file in LOCALES_DIR.glob("*.json"):
                with open(locale_file, "r", encoding="utf-8") as f:
                    self._translations[locale_file.stem] = json.load(f)
                logging.info(f"Loaded translations for locale: {locale_file.stem}")
        except (OSError, json.JSONDecodeError) as e:
            logging.error(f"Error loading translations: {e}")

    def get(self, key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
        """
        Получить перевод по ключу

        Args:
            key: Ключ в формате "section.key" (например, "errors.slot_conflict")
            locale: Код языка (ru, en)
            **kwargs: Параметры для форматирования

        Returns:
            Переведенная строка или сам ключ, если перевода нет
        """
        translations = self._translations.get(locale)
        if not translations:
            logging.warning(f"Locale {locale} not found, using default {DEFAULT_LOCALE}")
            translations = self._translations.get(DEFAULT_LOCALE, {})

        value = translations
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
            if value is None:
                logging.warning(f"Translation key not found: {key}")
                return key

        if kwargs:
            try:
                return value.format(**kwargs)
            except KeyError as e:
                logging.warning(f"Missing formatting parameter {e} for key {key}")
        return value


# Синглтон
i18n = I18n()


def t(key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
    """
    Короткий алиас для получения перевода

    Пример:
        t("errors.fully_booked", date="2024-05-17", time="14:00")
        t("waitlist.slot_available", locale="en", service="Fade", ...)
    """
    return i18n.get(key, locale, **kwargs)


def error_text(error, locale: str = DEFAULT_LOCALE) -> str:
    """Текст ошибки планирования для пользователя"""
    details = {key: value for key, value in error.details.items() if value is not None}
    return t(f"errors.{error.code}", locale, **details)
