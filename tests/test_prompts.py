# tests/test_prompts.py
import datetime
from concurrent.futures import ThreadPoolExecutor

from mailgate.db import utcnow
from mailgate.models import Prompt
from mailgate.prompts import (
    DEFAULT_PROMPT_CONTENT, EMAIL_RESPONSE_PROMPT, PromptErrorKind,
)


def _insert(database, **fields):
    with database.session() as db:
        p = Prompt(**fields)
        db.add(p)
        db.flush()
        return p.id


def test_empty_store_returns_default_template(resolver):
    assert resolver.resolve_active_content(EMAIL_RESPONSE_PROMPT) == DEFAULT_PROMPT_CONTENT


def test_inactive_rows_are_ignored(resolver, database):
    _insert(database, name="greeting", content="inactive", is_active=False, created_at=utcnow())
    assert resolver.resolve_active_content("greeting") == DEFAULT_PROMPT_CONTENT


def test_name_match_is_case_sensitive(resolver, database):
    _insert(database, name="Greeting", content="capitalised", is_active=True, created_at=utcnow())
    assert resolver.resolve_active_content("greeting") == DEFAULT_PROMPT_CONTENT
    assert resolver.resolve_active_content("Greeting") == "capitalised"


def test_latest_update_wins_regardless_of_insertion_order(resolver, database):
    base = datetime.datetime(2025, 1, 1, 12, 0, 0)
    # inserted first, but updated most recently
    _insert(database, name="dup", content="recently updated", is_active=True,
            created_at=base, updated_at=base + datetime.timedelta(days=10))
    _insert(database, name="dup", content="newer but never updated", is_active=True,
            created_at=base + datetime.timedelta(days=5))
    assert resolver.resolve_active_content("dup") == "recently updated"


def test_created_at_used_when_never_updated(resolver, database):
    base = datetime.datetime(2025, 1, 1, 12, 0, 0)
    _insert(database, name="dup", content="newer", is_active=True, created_at=base + datetime.timedelta(hours=1))
    _insert(database, name="dup", content="older", is_active=True, created_at=base)
    assert resolver.resolve_active_content("dup") == "newer"


def test_equal_timestamps_resolve_deterministically(resolver, database):
    ts = datetime.datetime(2025, 1, 1, 12, 0, 0)
    _insert(database, name="tie", content="first", is_active=True, created_at=ts)
    _insert(database, name="tie", content="second", is_active=True, created_at=ts)
    results = {resolver.resolve_active_content("tie") for _ in range(5)}
    assert results == {"second"}


def test_create_honours_active_flag_and_sets_created_at(resolver):
    before = utcnow()
    result = resolver.create("draft", "some content", is_active=False)
    assert result.ok
    assert result.prompt.id is not None
    assert result.prompt.is_active is False
    assert result.prompt.created_at >= before
    assert result.prompt.updated_at is None


def test_create_duplicate_name_fails_even_if_existing_is_inactive(resolver):
    assert resolver.create("reply", "v1", is_active=False).ok
    dup = resolver.create("reply", "v2", is_active=True)
    assert not dup.ok
    assert dup.error == PromptErrorKind.DUPLICATE_NAME
    assert "reply" in dup.message
    assert len([p for p in resolver.list_prompts() if p.name == "reply"]) == 1


def test_create_distinct_case_is_a_distinct_name(resolver):
    assert resolver.create("reply", "v1").ok
    assert resolver.create("Reply", "v1").ok


def test_update_missing_id_is_not_found(resolver):
    result = resolver.update(9999, "x", "y", True)
    assert result.error == PromptErrorKind.NOT_FOUND
    assert "9999" in result.message


def test_update_overwrites_fields_and_sets_updated_at(resolver):
    created = resolver.create("reply", "v1", is_active=True).prompt
    before = utcnow()
    updated = resolver.update(created.id, "reply", "v1", True)
    assert updated.ok
    assert updated.prompt.updated_at is not None
    assert updated.prompt.updated_at >= before

    changed = resolver.update(created.id, "renamed", "v2", False).prompt
    assert (changed.name, changed.content, changed.is_active) == ("renamed", "v2", False)
    assert changed.created_at == created.created_at


def test_update_may_introduce_duplicate_names(resolver):
    # update does not re-check name uniqueness, unlike create
    resolver.create("alpha", "a")
    beta = resolver.create("beta", "b").prompt
    result = resolver.update(beta.id, "alpha", "b renamed", True)
    assert result.ok
    assert sorted(p.name for p in resolver.list_prompts()) == ["alpha", "alpha"]
    assert resolver.resolve_active_content("alpha") == "b renamed"


def test_ensure_seed_prompt_is_idempotent(resolver):
    assert resolver.ensure_seed_prompt() is True
    assert resolver.ensure_seed_prompt() is False
    seeded = [p for p in resolver.list_prompts() if p.name == EMAIL_RESPONSE_PROMPT]
    assert len(seeded) == 1
    assert seeded[0].is_active is True
    assert seeded[0].content == DEFAULT_PROMPT_CONTENT


def test_ensure_seed_prompt_keeps_existing_content(resolver):
    resolver.create(EMAIL_RESPONSE_PROMPT, "custom house style", is_active=False)
    assert resolver.ensure_seed_prompt() is False
    seeded = [p for p in resolver.list_prompts() if p.name == EMAIL_RESPONSE_PROMPT]
    assert [p.content for p in seeded] == ["custom house style"]


def test_list_and_get(resolver):
    a = resolver.create("a", "1").prompt
    b = resolver.create("b", "2").prompt
    assert [p.id for p in resolver.list_prompts()] == [b.id, a.id]
    assert resolver.get_prompt(a.id).content == "1"
    assert resolver.get_prompt(12345) is None


def test_concurrent_creates_admit_exactly_one(resolver, database):
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: resolver.create("race", "body"), range(16)))

    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error == PromptErrorKind.DUPLICATE_NAME for r in results if not r.ok)
    with database.session() as db:
        assert db.query(Prompt).filter(Prompt.name == "race").count() == 1
