import json

import pytest

from bgbatch.client.cache import ResultCache, ResultEntry


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "results.json"


def _entry(name, job="J1"):
    return ResultEntry(url=f"http://static.test/{job}/{name}", name=name)


def test_append_then_remove_leaves_the_rest(cache_path):
    a, b = _entry("a.png"), _entry("b.png")
    cache = ResultCache(cache_path)

    cache.append([a, b])
    cache.remove(a.name)

    assert cache.load_all() == [b]


def test_reload_yields_persisted_sequence(cache_path):
    cache = ResultCache(cache_path)
    cache.append([_entry("1.png"), _entry("2.png")])
    cache.append([_entry("3.png", job="J2")])

    reloaded = ResultCache(cache_path)

    assert reloaded.load_all() == cache.load_all()
    assert [e.name for e in reloaded.load_all()] == ["1.png", "2.png", "3.png"]


def test_every_mutation_is_written_through(cache_path):
    cache = ResultCache(cache_path, key="processedImages")

    cache.append([_entry("a.png")])
    on_disk = json.loads(cache_path.read_text())
    assert on_disk["processedImages"] == [{"url": "http://static.test/J1/a.png", "name": "a.png"}]

    cache.remove("a.png")
    assert json.loads(cache_path.read_text())["processedImages"] == []


def test_removal_from_the_middle_keeps_append_order(cache_path):
    cache = ResultCache(cache_path)
    cache.append([_entry(n) for n in ("a.png", "b.png", "c.png", "d.png")])

    cache.remove("b.png")
    cache.remove("d.png")

    assert [e.name for e in ResultCache(cache_path).load_all()] == ["a.png", "c.png"]


def test_duplicates_are_preserved_and_removed_together(cache_path):
    cache = ResultCache(cache_path)
    cache.append([_entry("a.png")])
    cache.append([_entry("a.png"), _entry("b.png")])

    assert len(cache) == 3
    assert cache.remove("a.png") == 2
    assert [e.name for e in cache.load_all()] == ["b.png"]


def test_remove_unknown_name_is_a_no_op(cache_path):
    cache = ResultCache(cache_path)
    cache.append([_entry("a.png")])

    assert cache.remove("missing.png") == 0
    assert len(cache) == 1


def test_other_keys_in_the_store_survive(cache_path):
    cache_path.write_text(json.dumps({"theme": "dark"}))

    cache = ResultCache(cache_path)
    cache.append([_entry("a.png")])

    document = json.loads(cache_path.read_text())
    assert document["theme"] == "dark"
    assert len(document["processedImages"]) == 1


def test_missing_file_starts_empty(tmp_path):
    cache = ResultCache(tmp_path / "nested" / "results.json")

    assert cache.load_all() == []

    cache.append([_entry("a.png")])
    assert (tmp_path / "nested" / "results.json").exists()


def test_load_all_returns_a_copy(cache_path):
    cache = ResultCache(cache_path)
    cache.append([_entry("a.png")])

    snapshot = cache.load_all()
    snapshot.clear()

    assert len(cache.load_all()) == 1
