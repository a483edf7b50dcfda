import pytest

from learn_french.bundled import BUNDLED_TIMESTAMP
from learn_french.content import ContentCache
from learn_french.db import DocumentStore
from learn_french.exceptions import DuplicateId, InvalidRecord, NotFound, StoreUnavailable
from learn_french.fallback import get_fallback
from learn_french.models import CacheState, EntityKind
from learn_french.normalize import normalize
from learn_french.verbs import SUBJECTS


def test_bundled_word_loaded_when_store_empty(store):
    cache = ContentCache(store, bundled={"word": [{"id": "word-0", "english": "hello", "french": ["bonjour"]}]})
    cache.initialize()

    words = cache.get_all("words")
    assert len(words) == 1
    word = words[0]
    assert word.id == "word-0"
    assert word.english == "hello"
    assert word.french == ["bonjour"]
    assert word.category == "general"
    assert word.is_predefined is True
    assert cache.state("word") is CacheState.READY


def test_bundled_records_without_ids_get_synthetic_ids(cache):
    sentences = cache.get_all(EntityKind.SENTENCE)
    assert [s.id for s in sentences] == ["sentence-0", "sentence-1"]
    assert sentences[0].french == ["Bonjour."]


def test_synthetic_id_uses_source_position(store):
    bundled = {"number": [{"english": "", "french": ["zéro"]}, {"english": "1", "french": ["un"]}]}
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    assert [n.id for n in cache.get_all("number")] == ["number-1"]


def test_bundled_verbs_are_excluded(cache):
    assert cache.get_all("verbs") == []
    assert cache.state("verb") is CacheState.READY


def test_user_records_follow_bundled(cache):
    result = cache.add("word", {"english": "cat", "french": "chat"})
    assert result.success
    ids = [w.id for w in cache.get_all("word")]
    assert ids == ["word-0", result.record.id]


def test_add_coerces_french_string(cache, store):
    result = cache.add("word", {"english": "cat", "french": "chat"})
    assert result.success
    assert result.error is None
    stored = store.get_by_id("words", result.record.id)
    assert stored["french"] == ["chat"]
    assert stored["isPredefined"] is False


def test_add_then_get_all_has_exactly_one(cache):
    result = cache.add("sentence", {"english": "I am here.", "french": ["Je suis là."]})
    item_id = result.record.id
    assert item_id.startswith("user-sentence-")
    matching = [s for s in cache.get_all("sentence") if s.id == item_id]
    assert len(matching) == 1
    assert cache.get_by_id("sentence", item_id).french == ["Je suis là."]


def test_add_verb_matches_normalized_input(cache):
    data = {"infinitive": "être", "english": "to be", "conjugations": {"je": ["suis"]}}
    result = cache.add("verb", data)
    assert result.success

    verb = cache.get_by_id("verb", result.record.id)
    assert verb.conjugations == normalize("verb", data).conjugations
    for subject in ("tu", "il", "nous", "vous", "ils"):
        assert verb.conjugations[subject] == [""]
    assert cache.get_verbs() == [verb]


def test_add_stamps_timestamps(cache, clock):
    result = cache.add("number", {"english": "2", "french": ["deux"], "createdAt": "1999-01-01T00:00:00+00:00"})
    number = result.record
    assert number.created_at == number.updated_at
    assert number.created_at.startswith("2025-01-01")


def test_add_invalid_record(cache):
    result = cache.add("word", {"english": "cat"})
    assert not result
    assert isinstance(result.error, InvalidRecord)
    assert result.message
    assert [w.id for w in cache.get_all("word")] == ["word-0"]


def test_add_reserved_id_rejected(cache):
    result = cache.add("word", {"id": "word-7", "english": "cat", "french": ["chat"]})
    assert isinstance(result.error, InvalidRecord)
    assert cache.get_by_id("word", "word-7") is None


def test_add_padded_reserved_id_rejected(cache, store):
    result = cache.add("word", {"id": " word-0", "english": "cat", "french": "chat"})
    assert isinstance(result.error, InvalidRecord)
    assert store.get_by_id("words", "word-0") is None
    assert cache.get_by_id("word", "word-0").english == "hello"


def test_add_duplicate_id(cache):
    assert cache.add("word", {"id": "mine", "english": "cat", "french": ["chat"]})
    result = cache.add("word", {"id": "mine", "english": "dog", "french": ["chien"]})
    assert isinstance(result.error, DuplicateId)
    assert cache.get_by_id("word", "mine").english == "cat"


def test_user_flag_predefined_is_ignored_on_add(cache):
    result = cache.add("word", {"english": "cat", "french": ["chat"], "isPredefined": True})
    assert result.success
    assert cache.get_by_id("word", result.record.id).is_predefined is False


def test_update_merges_and_refreshes_timestamp(cache):
    added = cache.add("word", {"english": "cat", "french": ["chat"], "hint": "pet"}).record

    result = cache.update("word", added.id, {"french": "minou"})
    assert result.success
    word = cache.get_by_id("word", added.id)
    assert word.french == ["minou"]
    assert word.english == "cat"
    assert word.hint == "pet"
    assert word.created_at == added.created_at
    assert word.updated_at > added.updated_at


def test_update_missing_id(cache):
    result = cache.update("word", "nope", {"english": "cat"})
    assert isinstance(result.error, NotFound)


def test_update_bundled_record_not_found(cache):
    result = cache.update("word", "word-0", {"english": "hi"})
    assert isinstance(result.error, NotFound)
    assert cache.get_by_id("word", "word-0").english == "hello"


def test_update_stored_predefined_copy_not_found(store, bundled):
    store.add("words", {"id": "word-0", "english": "hello", "french": ["bonjour"], "isPredefined": True})
    store.add("words", {"id": "old-1", "english": "bye", "french": ["salut"], "isPredefined": True})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()

    for item_id in ("word-0", "old-1"):
        result = cache.update("word", item_id, {"french": ["coucou"]})
        assert isinstance(result.error, NotFound)
    assert store.get_by_id("words", "word-0")["isPredefined"] is True
    assert cache.get_by_id("word", "word-0").french == ["bonjour"]
    assert cache.get_by_id("word", "old-1") is None


def test_update_that_breaks_record_is_rejected(cache):
    added = cache.add("word", {"english": "cat", "french": ["chat"]}).record
    result = cache.update("word", added.id, {"french": []})
    assert isinstance(result.error, InvalidRecord)
    assert cache.get_by_id("word", added.id).french == ["chat"]


def test_delete(cache):
    added = cache.add("word", {"english": "cat", "french": ["chat"]}).record
    assert cache.delete("word", added.id).success
    assert cache.get_by_id("word", added.id) is None


def test_delete_missing_leaves_snapshot_unchanged(cache):
    cache.add("word", {"english": "cat", "french": ["chat"]})
    before = cache.get_all("word")

    result = cache.delete("word", "does-not-exist")

    assert result.success is False
    assert isinstance(result.error, NotFound)
    assert cache.get_all("word") == before


def test_get_all_returns_copies(cache):
    cache.get_all("word")[0].french.append("salut")
    assert cache.get_by_id("word", "word-0").french == ["bonjour"]


def test_stored_invalid_records_are_dropped(store, bundled):
    store.add("words", {"id": "broken", "english": "cat"})
    store.add("words", {"id": "ok", "english": "dog", "french": "chien"})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    assert [w.id for w in cache.get_all("word")] == ["word-0", "ok"]


def test_stored_predefined_copies_are_filtered(store, bundled):
    store.add("words", {"id": "word-0", "english": "stale hello", "french": ["bonjour"], "isPredefined": True})
    store.add("words", {"id": "old-copy", "english": "table", "french": ["table"], "isPredefined": True})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    words = cache.get_all("word")
    assert [w.id for w in words] == ["word-0"]
    assert words[0].english == "hello"


def test_duplicate_ids_keep_first(store):
    bundled = {"word": [
        {"id": "w", "english": "one", "french": ["un"]},
        {"id": "w", "english": "two", "french": ["deux"]},
    ]}
    store.add("words", {"id": "w", "english": "three", "french": ["trois"]})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    words = cache.get_all("word")
    assert len(words) == 1
    assert words[0].english == "one"


def test_store_unavailable_serves_fallback(tmp_path, bundled):
    store = DocumentStore(f"sqlite:///{tmp_path / 'no-such-dir' / 'content.db'}")
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()

    words = cache.get_all("words")
    assert 2 <= len(words) <= 3
    assert words == get_fallback("word")
    for kind in EntityKind:
        assert cache.state(kind) is CacheState.DEGRADED
        assert cache.get_all(kind)


def test_writes_fail_cleanly_when_store_unavailable(tmp_path):
    store = DocumentStore(f"sqlite:///{tmp_path / 'no-such-dir' / 'content.db'}")
    cache = ContentCache(store, bundled={})
    cache.initialize()

    result = cache.add("word", {"english": "cat", "french": ["chat"]})
    assert result.success is False
    assert isinstance(result.error, StoreUnavailable)
    assert isinstance(cache.delete("word", "x").error, StoreUnavailable)


def test_one_failing_kind_does_not_block_others(store, bundled, monkeypatch):
    original = store.get_all

    def flaky(collection):
        if collection == "sentences":
            raise StoreUnavailable("sentences unreadable")
        return original(collection)

    monkeypatch.setattr(store, "get_all", flaky)
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()

    assert cache.state("sentence") is CacheState.DEGRADED
    assert cache.get_all("sentence") == get_fallback("sentence")
    assert cache.state("word") is CacheState.READY
    assert [w.id for w in cache.get_all("word")] == ["word-0"]

    status = cache.get_debug_cache_status()
    assert status[EntityKind.SENTENCE].errors == ["sentences unreadable"]
    assert status[EntityKind.WORD].count == 1

    monkeypatch.setattr(store, "get_all", original)
    cache.force_refresh()
    assert cache.state("sentence") is CacheState.READY
    assert len(cache.get_all("sentence")) == 2


def test_unexpected_load_error_degrades_kind(store, bundled, monkeypatch):
    original = store.get_all

    def broken(collection):
        if collection == "numbers":
            raise RuntimeError("boom")
        return original(collection)

    monkeypatch.setattr(store, "get_all", broken)
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    assert cache.state("number") is CacheState.DEGRADED
    assert cache.state("word") is CacheState.READY


def test_force_refresh_recovers_after_store_comes_back(tmp_path, bundled):
    missing = tmp_path / "later"
    store = DocumentStore(f"sqlite:///{missing / 'content.db'}")
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    assert cache.state("word") is CacheState.DEGRADED

    missing.mkdir()
    cache.force_refresh()
    assert cache.state("word") is CacheState.READY
    assert [w.id for w in cache.get_all("word")] == ["word-0"]
    store.close()


def test_initialize_is_idempotent_for_same_user(store, bundled, monkeypatch):
    cache = ContentCache(store, bundled=bundled)
    cache.initialize("alice")
    calls = []
    monkeypatch.setattr(cache, "_load_all", lambda: calls.append(1))

    cache.initialize("alice")
    assert calls == []

    cache.initialize("bob")
    assert calls == [1]
    assert cache.user_id == "bob"


def test_get_all_initializes_lazily(store, bundled):
    cache = ContentCache(store, bundled=bundled)
    assert cache.state("word") is CacheState.UNINITIALIZED
    assert [w.id for w in cache.get_all("word")] == ["word-0"]
    assert cache.is_initialized


def test_teardown_resets_state(cache):
    cache.teardown()
    assert not cache.is_initialized
    assert all(s.state is CacheState.UNINITIALIZED for s in cache.get_debug_cache_status().values())


def test_filtered_words(cache):
    cache.add("word", {"english": "red", "french": ["rouge"], "category": "colors"})
    cache.add("word", {"english": "ten", "french": ["dix"], "category": "number"})

    assert [w.english for w in cache.get_words(["colors"])] == ["red"]
    assert {w.english for w in cache.get_words()} == {"hello", "red", "ten"}
    assert {w.english for w in cache.get_words(exclude_numbers=True)} == {"hello", "red"}


def test_filtered_verbs(cache):
    cache.add("verb", {"infinitive": "parler"})
    cache.add("verb", {"infinitive": "finir"})
    cache.add("verb", {"infinitive": "aller", "group": "4"})

    assert [v.infinitive for v in cache.get_verbs(["2"])] == ["finir"]
    assert {v.infinitive for v in cache.get_verbs([1, 4])} == {"parler", "aller"}
    assert len(cache.get_verbs()) == 3


def test_purge_predefined(store, bundled):
    store.add("words", {"id": "old-1", "english": "a", "french": ["b"], "isPredefined": True})
    store.add("words", {"id": "mine", "english": "c", "french": ["d"]})
    store.add("numbers", {"id": "old-2", "english": "1", "french": ["un"], "isPredefined": True})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()

    removed = cache.purge_predefined()

    assert removed[EntityKind.WORD] == 1
    assert removed[EntityKind.NUMBER] == 1
    assert removed[EntityKind.VERB] == 0
    assert [d["id"] for d in store.get_all("words")] == ["mine"]
    assert store.count("numbers") == 0


def test_purge_predefined_limited_kinds(store, bundled):
    store.add("words", {"id": "old-1", "english": "a", "french": ["b"], "isPredefined": True})
    store.add("numbers", {"id": "old-2", "english": "1", "french": ["un"], "isPredefined": True})
    cache = ContentCache(store, bundled=bundled)

    removed = cache.purge_predefined(["numbers"])

    assert list(removed) == [EntityKind.NUMBER]
    assert store.count("words") == 1


def test_repair_verbs(store, bundled):
    valid = normalize("verb", {
        "id": "ok", "infinitive": "parler", "english": "to speak",
        "conjugations": {s: [f] for s, f in zip(SUBJECTS, ["parle", "parles", "parle", "parlons", "parlez", "parlent"])},
    }, now="2025-01-01T00:00:00+00:00").to_dict()
    store.add("verbs", valid)
    store.add("verbs", {"id": "wrong-etre", "infinitive": "être", "english": "to be",
                        "conjugations": {"je": ["êts"], "tu": ["êts"]}})
    store.add("verbs", {"id": "no-infinitive", "english": "to be"})
    store.add("verbs", {"id": "partial", "infinitive": "finir", "conjugations": {"je": "finis"}})
    cache = ContentCache(store, bundled=bundled)
    cache.initialize()
    assert len(cache.get_all("verb")) == 3

    report = cache.repair_verbs()

    assert report.total_before == 4
    assert report.total_after == 3
    assert report.deleted == 1
    assert report.fixed == 2
    assert report.already_valid == 1

    etre = cache.get_by_id("verb", "wrong-etre")
    assert etre.conjugations["je"] == ["suis"]
    assert etre.conjugations["ils"] == ["sont"]
    partial = store.get_by_id("verbs", "partial")
    assert partial["conjugations"]["je"] == ["finis"]
    assert partial["conjugations"]["nous"] == [""]
    assert partial["group"] == "2"

    # A second pass has nothing left to fix
    again = cache.repair_verbs()
    assert again.fixed == 0
    assert again.already_valid == 3


def test_repair_verbs_keeps_unknown_fields(store, bundled):
    store.add("verbs", {"id": "noted", "infinitive": "avoir", "english": "to have",
                        "notes": "irregular", "conjugations": {"je": ["ai"]}})
    cache = ContentCache(store, bundled=bundled)

    report = cache.repair_verbs()

    assert report.fixed == 1
    stored = store.get_by_id("verbs", "noted")
    assert stored["notes"] == "irregular"
    assert stored["conjugations"]["nous"] == ["avons"]


def test_bundled_timestamps_are_stable_across_reloads(cache):
    before = cache.get_by_id("word", "word-0")
    cache.add("word", {"english": "cat", "french": ["chat"]})
    cache.force_refresh()
    after = cache.get_by_id("word", "word-0")
    assert before.created_at == after.created_at == BUNDLED_TIMESTAMP
    assert after.updated_at == BUNDLED_TIMESTAMP


def test_reload_single_kind(cache, store):
    store.add("words", {"id": "direct", "english": "cat", "french": ["chat"]})
    assert cache.get_by_id("word", "direct") is None

    assert cache.reload("word") is CacheState.READY
    assert cache.get_by_id("word", "direct").french == ["chat"]
