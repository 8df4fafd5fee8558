"""Contract tests shared by the in-memory and SQL document stores."""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from sheetshare.core.database import SHAREABLE_LINKS, WEBHOOKS
from sheetshare.core.store import ASCENDING, DESCENDING, DuplicateKeyError, Update

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    return request.getfixturevalue("store" if request.param == "memory" else "sql_store")


def _link(upload_id="u-1", token="tok", **overrides):
    doc = {
        "upload_id": upload_id,
        "token": token,
        "role": "viewer",
        "expires_at": None,
        "is_active": True,
        "access_count": 0,
        "created_at": T0,
    }
    doc.update(overrides)
    return doc


def _webhook(name="hook", **overrides):
    doc = {
        "name": name,
        "url": "https://example.com/hook",
        "events": ["chart.created"],
        "secret": "s" * 64,
        "is_active": True,
        "success_count": 0,
        "failure_count": 0,
        "created_at": T0,
    }
    doc.update(overrides)
    return doc


def test_insert_generates_id_and_find_one_round_trips(any_store):
    link_id = any_store.insert_one(SHAREABLE_LINKS, _link(token="abc"))
    found = any_store.find_one(SHAREABLE_LINKS, {"id": link_id})
    assert found["token"] == "abc"
    assert found["created_at"] == T0


def test_unique_token_rejected(any_store):
    any_store.insert_one(SHAREABLE_LINKS, _link(token="same"))
    with pytest.raises(DuplicateKeyError):
        any_store.insert_one(SHAREABLE_LINKS, _link(token="same"))


def test_find_sort_skip_limit(any_store):
    for i in range(4):
        any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-sort", token=f"t{i}", created_at=T0 + timedelta(hours=i)))

    newest_first = any_store.find(SHAREABLE_LINKS, {"upload_id": "u-sort"}, sort=[("created_at", DESCENDING)])
    assert [d["token"] for d in newest_first] == ["t3", "t2", "t1", "t0"]

    page = any_store.find(SHAREABLE_LINKS, {"upload_id": "u-sort"}, sort=[("created_at", ASCENDING)], skip=1, limit=2)
    assert [d["token"] for d in page] == ["t1", "t2"]


def test_operator_filters(any_store):
    any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-ops", token="old", created_at=T0))
    any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-ops", token="new", created_at=T0 + timedelta(days=2), role="editor"))

    recent = any_store.find(SHAREABLE_LINKS, {"upload_id": "u-ops", "created_at": {"$gte": T0 + timedelta(days=1)}})
    assert [d["token"] for d in recent] == ["new"]

    not_viewer = any_store.find(SHAREABLE_LINKS, {"upload_id": "u-ops", "role": {"$ne": "viewer"}})
    assert [d["token"] for d in not_viewer] == ["new"]

    both = any_store.find(SHAREABLE_LINKS, {"token": {"$in": ["old", "new"]}})
    assert len(both) == 2


def test_null_equality_filter(any_store):
    any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-null", token="forever"))
    any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-null", token="bounded", expires_at=T0 + timedelta(days=1)))

    forever = any_store.find(SHAREABLE_LINKS, {"upload_id": "u-null", "expires_at": None})
    assert [d["token"] for d in forever] == ["forever"]


def test_increment_and_set_applied_together(any_store):
    link_id = any_store.insert_one(SHAREABLE_LINKS, _link(token="inc"))
    seen = T0 + timedelta(minutes=5)

    updated = any_store.find_one_and_update(
        SHAREABLE_LINKS,
        {"id": link_id, "is_active": True},
        Update(inc={"access_count": 1}, set_fields={"last_accessed": seen}),
    )
    assert updated["access_count"] == 1
    assert updated["last_accessed"] == seen


def test_conditional_update_matches_at_most_once(any_store):
    link_id = any_store.insert_one(SHAREABLE_LINKS, _link(token="once"))
    flip = Update(set_fields={"is_active": False})

    assert any_store.update_one(SHAREABLE_LINKS, {"id": link_id, "is_active": True}, flip) == 1
    assert any_store.update_one(SHAREABLE_LINKS, {"id": link_id, "is_active": True}, flip) == 0


def test_unset_clears_field(any_store):
    link_id = any_store.insert_one(SHAREABLE_LINKS, _link(token="gone", created_by="owner@example.com"))
    any_store.update_one(SHAREABLE_LINKS, {"id": link_id}, Update(unset=("created_by",)))
    assert any_store.find_one(SHAREABLE_LINKS, {"id": link_id}).get("created_by") is None


def test_push_appends_to_list(any_store):
    hook_id = any_store.insert_one(WEBHOOKS, _webhook())
    any_store.update_one(WEBHOOKS, {"id": hook_id}, Update(push={"events": "error.occurred"}))
    assert any_store.find_one(WEBHOOKS, {"id": hook_id})["events"] == ["chart.created", "error.occurred"]


def test_delete_one_and_many(any_store):
    for i in range(3):
        any_store.insert_one(SHAREABLE_LINKS, _link(upload_id="u-del", token=f"d{i}"))

    assert any_store.delete_one(SHAREABLE_LINKS, {"upload_id": "u-del"}) == 1
    assert any_store.delete_many(SHAREABLE_LINKS, {"upload_id": "u-del"}) == 2
    assert any_store.delete_many(SHAREABLE_LINKS, {"upload_id": "u-del"}) == 0


def test_in_memory_reads_are_isolated_copies(store):
    hook_id = store.insert_one(WEBHOOKS, _webhook())
    doc = store.find_one(WEBHOOKS, {"id": hook_id})
    doc["events"].append("tampered")
    assert store.find_one(WEBHOOKS, {"id": hook_id})["events"] == ["chart.created"]


def test_in_memory_concurrent_increments_are_not_lost(store):
    hook_id = store.insert_one(WEBHOOKS, _webhook())

    def bump(_):
        store.update_one(WEBHOOKS, {"id": hook_id}, Update(inc={"failure_count": 1}))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(bump, range(200)))

    assert store.find_one(WEBHOOKS, {"id": hook_id})["failure_count"] == 200
