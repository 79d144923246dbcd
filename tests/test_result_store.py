from datetime import datetime, timedelta, timezone

import pytest

from models.classification import ClassificationResult
from models.pixel_buffer import RawImage
from services.diagnosis_assembler import assemble
from services.image_store import ImageStore, is_owned_url
from services.result_store import ResultStore
from utils.database_init import AsyncDatabaseInitializer

from conftest import encode_image


@pytest.fixture
def db(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def images(tmp_path):
    return ImageStore(tmp_path / "images")


@pytest.fixture
def store(db, images):
    return ResultStore(db, images, min_confidence=75)


def _record(identifier="late_blight", confidence=88, image_url="/images/none.png", at=None):
    return assemble(ClassificationResult(identifier, confidence), image_url, now=at)


async def test_saved_record_round_trips(store):
    record = _record()
    assert await store.save(record)
    loaded = await store.get_by_id(record.id)
    assert loaded == record


async def test_low_confidence_record_is_not_listed(store):
    low = _record(confidence=60)
    assert not await store.save(low)
    assert await store.list_recent() == []
    # The caller keeps its in-memory record.
    assert low.confidence_score == 60


async def test_list_is_newest_first(store):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    older = _record(at=base)
    newer = _record(identifier="healthy", confidence=95, at=base + timedelta(hours=1))
    await store.save(older)
    await store.save(newer)
    assert [r.id for r in await store.list_recent()] == [newer.id, older.id]


async def test_history_survives_a_new_initializer(tmp_path, images):
    first = ResultStore(AsyncDatabaseInitializer(tmp_path / "db"), images)
    record = _record()
    await first.save(record)
    second = ResultStore(AsyncDatabaseInitializer(tmp_path / "db"), images)
    assert await second.get_by_id(record.id) is not None


async def test_feedback_last_write_wins(store):
    record = _record()
    await store.save(record)
    assert await store.attach_feedback(record.id, True, "spot on")
    assert await store.attach_feedback(record.id, False)
    loaded = await store.get_by_id(record.id)
    assert loaded.feedback.helpful is False
    assert loaded.feedback.comment is None


async def test_feedback_for_unknown_id_is_a_quiet_no_op(store):
    assert not await store.attach_feedback("missing", True)


async def test_delete_removes_record_and_owned_blob(store, images):
    url = await store.store_image(RawImage(encode_image(40, 40), "image/png", "leaf.png"))
    assert url.startswith("/images/") and url.endswith(".png")
    filename = url.rsplit("/", 1)[-1]
    assert images.path_for(filename) is not None

    record = _record(image_url=url)
    await store.save(record)
    assert await store.delete(record.id) is True
    assert await store.get_by_id(record.id) is None
    assert images.path_for(filename) is None


async def test_delete_of_missing_record_reports_false(store):
    assert await store.delete("nope") is False


async def test_demo_and_preview_urls_are_never_deleted(store):
    for url in ("https://images.unsplash.com/photo-1?w=400", "data:image/png;base64,AA==", "blob:local/abc"):
        assert not is_owned_url(url)
        record = _record(image_url=url)
        await store.save(record)
        assert await store.delete(record.id) is True


async def test_offline_store_is_a_no_op(images):
    offline = ResultStore(None, images)
    record = _record()
    assert not await offline.is_available()
    assert not await offline.save(record)
    assert await offline.list_recent() == []
    assert await offline.get_by_id(record.id) is None
    assert await offline.delete(record.id) is None
    assert not await offline.attach_feedback(record.id, True)
    assert await offline.store_image(RawImage(encode_image(40, 40), "image/png")) is None


async def test_unreachable_database_is_treated_as_offline(tmp_path, db):
    store = ResultStore(db)
    await db.ensure_database()
    db.db_path.unlink()
    db.db_path.mkdir()
    assert not await store.is_available()
    assert await store.list_recent() == []


def test_initializer_requires_a_directory(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_DIR", raising=False)
    with pytest.raises(RuntimeError):
        AsyncDatabaseInitializer()
    a_file = tmp_path / "file.txt"
    a_file.write_text("x")
    with pytest.raises(RuntimeError):
        AsyncDatabaseInitializer(a_file)
