"""
Tests for translation lookup and the source-text fallback.
"""

import pytest
from sqlalchemy import func, select, text

from jlpt_backend.assessments.exam.database_models import Language
from jlpt_backend.assessments.exam.localization import (
    InMemoryLocalizationResolver, Localizer, SqlLocalizationResolver
)


@pytest.fixture
def resolver():
    return InMemoryLocalizationResolver(
        {("q.1", "en"): "Dog", ("q.1", "vi"): "Con chó"},
        languages=["en", "ja", "vi"],
    )


@pytest.mark.asyncio
async def test_requested_language_is_returned(resolver):
    assert await Localizer(resolver, "vi").text("q.1", "犬") == "Con chó"


@pytest.mark.asyncio
async def test_missing_translation_falls_back_to_source_text(resolver):
    assert await Localizer(resolver, "ja").text("q.1", "犬") == "犬"
    assert await Localizer(resolver, "en").text("q.unknown", "犬") == "犬"
    assert await Localizer(resolver, "en").text(None, "犬") == "犬"


@pytest.mark.asyncio
async def test_no_language_expands_to_every_language(resolver):
    result = await Localizer(resolver).text("q.1", "犬")

    assert result == [
        {"language": "en", "value": "Dog"},
        {"language": "ja", "value": "犬"},
        {"language": "vi", "value": "Con chó"},
    ]


@pytest.mark.asyncio
async def test_no_known_languages_keeps_the_source_text():
    assert await Localizer(InMemoryLocalizationResolver()).text("q.1", "犬") == "犬"
    assert await Localizer(InMemoryLocalizationResolver()).text(None, "犬") == "犬"


@pytest.mark.asyncio
async def test_in_memory_resolver_add():
    resolver = InMemoryLocalizationResolver()
    resolver.add("q.2", "fr", "Chat")

    assert await resolver.resolve("q.2", "fr") == "Chat"
    assert await resolver.available_languages() == ["fr"]
    assert await resolver.resolve_all("q.2") == [{"language": "fr", "value": "Chat"}]


@pytest.mark.asyncio
async def test_sql_resolver_reads_the_translation_table(seed, db_session):
    english = await seed.language("en")
    await seed.language("ja")
    await seed.translation(english, "question.9.text", "Which reading is correct?")

    resolver = SqlLocalizationResolver(db_session)

    assert await resolver.resolve("question.9.text", "en") == "Which reading is correct?"
    assert await resolver.resolve("question.9.text", "ja") is None
    assert await resolver.available_languages() == ["en", "ja"]
    assert await Localizer(resolver).text("question.9.text", "正しい読み方は？") == [
        {"language": "en", "value": "Which reading is correct?"},
        {"language": "ja", "value": "正しい読み方は？"},
    ]


@pytest.mark.asyncio
async def test_failed_lookup_leaves_the_transaction_usable(engine, db_session):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE translations"))

    db_session.add(Language(code="en", name="English"))
    await db_session.flush()

    resolver = SqlLocalizationResolver(db_session)
    assert await resolver.resolve("question.9.text", "en") is None
    assert await resolver.resolve_all("question.9.text") == []
    assert await Localizer(resolver, "en").text("question.9.text", "犬") == "犬"

    await db_session.commit()
    assert await db_session.scalar(select(func.count()).select_from(Language)) == 1
