"""
Localization of exam content.

``LocalizationResolver`` is the read contract of the translation store:
``resolve`` returns a value or ``None`` and ``resolve_all`` every stored
value of a key. Neither raises for a missing translation, and store errors
are absorbed and logged so that callers always fall back to source text.
Each SQL lookup runs in its own savepoint, so a failed one leaves the
surrounding transaction usable.

``Localizer`` applies the fallback rule for one requested language, or
expands a string into the full ``[{language, value}]`` list when no
language was requested.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jlpt_backend.assessments.exam.database_models import Language, Translation
from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("localization")

LocalizedValue = Dict[str, Optional[str]]
LocalizedText = Union[Optional[str], List[LocalizedValue]]


class LocalizationResolver(ABC):
    """Read side of the translation key-value store."""

    @abstractmethod
    async def resolve(self, key: str, language_code: str) -> Optional[str]:
        """Value of ``key`` in ``language_code``, or ``None`` if absent."""

    @abstractmethod
    async def resolve_all(self, key: str) -> List[LocalizedValue]:
        """Every stored ``{"language", "value"}`` pair of ``key``."""

    @abstractmethod
    async def available_languages(self) -> List[str]:
        """Codes of every known language."""


class SqlLocalizationResolver(LocalizationResolver):
    """Resolver over the ``languages`` and ``translations`` tables."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._languages: Optional[List[str]] = None

    async def resolve(self, key: str, language_code: str) -> Optional[str]:
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    select(Translation.value)
                    .join(Language, Language.id == Translation.language_id)
                    .where(Translation.key == key, Language.code == language_code)
                )
                return result.scalars().first()
        except SQLAlchemyError as e:
            logger.warning(f"Translation lookup failed for {key!r} ({language_code}): {e}")
            return None

    async def resolve_all(self, key: str) -> List[LocalizedValue]:
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    select(Language.code, Translation.value)
                    .join(Language, Language.id == Translation.language_id)
                    .where(Translation.key == key)
                    .order_by(Language.code)
                )
                return [{"language": code, "value": value} for code, value in result.all()]
        except SQLAlchemyError as e:
            logger.warning(f"Translation lookup failed for {key!r}: {e}")
            return []

    async def available_languages(self) -> List[str]:
        if self._languages is None:
            try:
                async with self.session.begin_nested():
                    result = await self.session.execute(select(Language.code).order_by(Language.code))
                    self._languages = list(result.scalars())
            except SQLAlchemyError as e:
                logger.warning(f"Language lookup failed: {e}")
                return []
        return self._languages


class InMemoryLocalizationResolver(LocalizationResolver):
    """
    Dictionary-backed resolver.

    Used for fixtures and tooling that run without a database.
    """

    def __init__(
        self,
        translations: Optional[Dict[Tuple[str, str], str]] = None,
        languages: Optional[List[str]] = None
    ):
        self.translations: Dict[Tuple[str, str], str] = dict(translations or {})
        known = {language for _, language in self.translations}
        self.languages = sorted(set(languages or []) | known)

    def add(self, key: str, language_code: str, value: str) -> None:
        self.translations[(key, language_code)] = value
        if language_code not in self.languages:
            self.languages = sorted(self.languages + [language_code])

    async def resolve(self, key: str, language_code: str) -> Optional[str]:
        return self.translations.get((key, language_code))

    async def resolve_all(self, key: str) -> List[LocalizedValue]:
        return [
            {"language": language, "value": self.translations[(key, language)]}
            for language in self.languages
            if (key, language) in self.translations
        ]

    async def available_languages(self) -> List[str]:
        return list(self.languages)


class Localizer:
    """
    Localizes strings for one response.

    With ``language`` set, ``text`` returns the stored translation or the
    source text. Without it, ``text`` returns one ``{language, value}``
    entry per known language, each falling back to the source text. With no
    known languages at all it returns the source text unchanged.
    """

    def __init__(self, resolver: LocalizationResolver, language: Optional[str] = None):
        self.resolver = resolver
        self.language = language

    async def text(self, key: Optional[str], source_text: Optional[str]) -> LocalizedText:
        if self.language:
            if not key:
                return source_text
            value = await self.resolver.resolve(key, self.language)
            return value if value is not None else source_text

        languages = await self.resolver.available_languages()
        if not languages:
            return source_text
        stored = {}
        if key:
            stored = {
                entry["language"]: entry["value"]
                for entry in await self.resolver.resolve_all(key)
            }
        return [
            {"language": language, "value": stored.get(language) or source_text}
            for language in languages
        ]
