"""Tests for the short-link store and click recording."""

import itertools
import logging
import re
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError

from shortlinks import crud, models
from shortlinks.database import Base, make_engine, make_session_factory
from shortlinks.errors import ExhaustedRetries, Forbidden, InvalidInput, NotFound


def fixed_codes(monkeypatch, *codes):
    source = itertools.chain(codes, itertools.repeat(codes[-1]))
    monkeypatch.setattr(crud, "generate_code", lambda length=6: next(source))


def click_events(db, link_id):
    return db.scalar(
        select(func.count()).select_from(models.ClickEvent).where(models.ClickEvent.short_link_id == link_id)
    )


class TestGenerateCode:
    def test_default_length_and_alphabet(self):
        code = crud.generate_code()
        assert re.fullmatch(r"[A-Za-z0-9]{6}", code)

    def test_custom_length(self):
        assert len(crud.generate_code(10)) == 10

    def test_codes_vary(self):
        assert len({crud.generate_code() for _ in range(50)}) > 45


class TestCreateLink:
    def test_create_and_resolve(self, db):
        link = crud.create_link(db, "https://example.com/a")

        assert re.fullmatch(r"[A-Za-z0-9]{6}", link.code)
        assert link.click_count == 0
        assert link.owner_id is None
        assert crud.resolve(db, link.code).original_url == "https://example.com/a"

    def test_configured_length(self, db):
        link = crud.create_link(db, "https://example.com/a", code_length=8)
        assert len(link.code) == 8

    def test_owner_recorded(self, db, user):
        link = crud.create_link(db, "https://example.com/a", owner_id=user.id)
        assert link.owner_id == user.id

    @pytest.mark.parametrize("url", ["javascript:alert(1)", "ftp://example.com", "http://localhost",
                                     "http://192.168.1.1"])
    def test_invalid_url_persists_nothing(self, db, url):
        with pytest.raises(InvalidInput):
            crud.create_link(db, url)
        assert db.scalar(select(func.count()).select_from(models.ShortLink)) == 0

    def test_retries_on_collision(self, db, monkeypatch):
        fixed_codes(monkeypatch, "Taken1")
        crud.create_link(db, "https://example.com/first")

        fixed_codes(monkeypatch, "Taken1", "Taken1", "Fresh1")
        link = crud.create_link(db, "https://example.com/second")
        assert link.code == "Fresh1"

    def test_reserved_words_count_as_collisions(self, db, monkeypatch):
        fixed_codes(monkeypatch, "health", "Fresh1")
        assert crud.create_link(db, "https://example.com").code == "Fresh1"

    def test_exhausted_retries(self, db, monkeypatch):
        fixed_codes(monkeypatch, "Taken1")
        crud.create_link(db, "https://example.com/first")

        with pytest.raises(ExhaustedRetries):
            crud.create_link(db, "https://example.com/second")
        assert db.scalar(select(func.count()).select_from(models.ShortLink)) == 1

    def test_insert_race_on_unique_index_is_retried(self, db, monkeypatch):
        fixed_codes(monkeypatch, "Race01")
        crud.create_link(db, "https://example.com/first")

        # Another request inserts between our check and our insert: the
        # first lookup misses, the one after the failed commit sees the row
        real_get_link = crud.get_link
        lookups = []

        def racing_get_link(db, code):
            lookups.append(code)
            return None if len(lookups) == 1 else real_get_link(db, code)

        monkeypatch.setattr(crud, "get_link", racing_get_link)
        fixed_codes(monkeypatch, "Race01", "Safe01")
        link = crud.create_link(db, "https://example.com/second")

        assert link.code == "Safe01"
        assert db.scalar(select(func.count()).select_from(models.ShortLink)) == 2

    def test_unrelated_integrity_error_propagates(self, settings):
        engine = make_engine(settings.database_url)

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_connection, connection_record):
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        Base.metadata.create_all(bind=engine)
        try:
            with make_session_factory(engine)() as db:
                with pytest.raises(IntegrityError):
                    crud.create_link(db, "https://example.com", owner_id="ghost-user")
                assert db.scalar(select(func.count()).select_from(models.ShortLink)) == 0
        finally:
            engine.dispose()


class TestResolveAndInfo:
    def test_unknown_code(self, db):
        with pytest.raises(NotFound):
            crud.resolve(db, "nope00")

    def test_info_is_stable_without_writes(self, db):
        link = crud.create_link(db, "https://example.com/a")
        first = crud.get_info(db, link.code)
        second = crud.get_info(db, link.code)
        assert (first.original_url, first.click_count, first.updated_at) == \
               (second.original_url, second.click_count, second.updated_at)


class TestRecordClick:
    def test_increments_counter_and_appends_event(self, db, session_factory):
        link = crud.create_link(db, "https://example.com/a")

        for _ in range(3):
            crud.record_click(session_factory, link.id)

        db.refresh(link)
        assert link.click_count == 3
        assert click_events(db, link.id) == 3

    def test_deleted_link_is_silently_skipped(self, db, session_factory, user):
        link = crud.create_link(db, "https://example.com/a", owner_id=user.id)
        crud.delete_owned(db, user.id, link.id)

        crud.record_click(session_factory, link.id)

        db.refresh(link)
        assert link.click_count == 0
        assert click_events(db, link.id) == 0

    def test_unknown_link_is_silently_skipped(self, db, session_factory):
        crud.record_click(session_factory, "does-not-exist")
        assert db.scalar(select(func.count()).select_from(models.ClickEvent)) == 0

    def test_failures_are_logged_not_raised(self, caplog):
        def broken_factory():
            raise RuntimeError("database down")

        with caplog.at_level(logging.ERROR, logger="shortlinks.crud"):
            crud.record_click(broken_factory, "any-id")

        assert "Failed to record click" in caplog.text

    def test_failed_event_insert_rolls_back_counter(self, db, session_factory, monkeypatch, caplog):
        link = crud.create_link(db, "https://example.com/a")
        real_event = models.ClickEvent
        # NOT NULL violation at flush, after the counter UPDATE has run
        monkeypatch.setattr(models, "ClickEvent", lambda short_link_id: real_event(short_link_id=None))

        with caplog.at_level(logging.ERROR, logger="shortlinks.crud"):
            crud.record_click(session_factory, link.id)
        monkeypatch.undo()

        db.refresh(link)
        assert link.click_count == 0
        assert click_events(db, link.id) == 0
        assert "Failed to record click" in caplog.text

    def test_concurrent_clicks_are_all_counted(self, db, session_factory):
        link = crud.create_link(db, "https://example.com/a")
        clicks = 20

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: crud.record_click(session_factory, link.id), range(clicks)))

        db.refresh(link)
        assert link.click_count == clicks
        assert click_events(db, link.id) == clicks


class TestOwnedLinks:
    def test_list_newest_first(self, db, user, other_user):
        first = crud.create_link(db, "https://example.com/1", owner_id=user.id)
        second = crud.create_link(db, "https://example.com/2", owner_id=user.id)
        crud.create_link(db, "https://example.com/other", owner_id=other_user.id)
        crud.create_link(db, "https://example.com/anon")

        assert [link.id for link in crud.list_owned(db, user.id)] == [second.id, first.id]

    def test_update(self, db, user):
        link = crud.create_link(db, "https://example.com/old", owner_id=user.id)
        updated = crud.update_owned(db, user.id, link.id, "https://example.com/new")

        assert updated.original_url == "https://example.com/new"
        assert updated.code == link.code
        assert crud.resolve(db, link.code).original_url == "https://example.com/new"

    def test_update_rejects_invalid_url(self, db, user):
        link = crud.create_link(db, "https://example.com/old", owner_id=user.id)
        with pytest.raises(InvalidInput):
            crud.update_owned(db, user.id, link.id, "http://10.0.0.1")

    def test_update_unknown_link(self, db, user):
        with pytest.raises(NotFound):
            crud.update_owned(db, user.id, "missing", "https://example.com")

    def test_other_owner_is_forbidden(self, db, user, other_user):
        link = crud.create_link(db, "https://example.com/old", owner_id=user.id)

        for _ in range(2):
            with pytest.raises(Forbidden):
                crud.update_owned(db, other_user.id, link.id, "https://example.com/new")
            with pytest.raises(Forbidden):
                crud.delete_owned(db, other_user.id, link.id)
        # a successful owner call does not open the link up to others
        crud.update_owned(db, user.id, link.id, "https://example.com/new")
        with pytest.raises(Forbidden):
            crud.update_owned(db, other_user.id, link.id, "https://example.com/evil")

    def test_anonymous_links_are_immutable(self, db, user):
        link = crud.create_link(db, "https://example.com/anon")
        with pytest.raises(Forbidden):
            crud.update_owned(db, user.id, link.id, "https://example.com/new")
        with pytest.raises(Forbidden):
            crud.delete_owned(db, user.id, link.id)

    def test_soft_delete_hides_link_and_frees_code(self, db, user, monkeypatch):
        fixed_codes(monkeypatch, "Reuse1")
        link = crud.create_link(db, "https://example.com/a", owner_id=user.id)
        crud.delete_owned(db, user.id, link.id)

        db.refresh(link)
        assert link.deleted_at is not None
        with pytest.raises(NotFound):
            crud.resolve(db, "Reuse1")
        with pytest.raises(NotFound):
            crud.get_info(db, "Reuse1")
        with pytest.raises(NotFound):
            crud.delete_owned(db, user.id, link.id)
        assert crud.list_owned(db, user.id) == []

        reused = crud.create_link(db, "https://example.com/b")
        assert reused.code == "Reuse1"
        assert reused.id != link.id
