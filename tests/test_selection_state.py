"""Tests for the persisted model selection."""
from services.selection_state import FileSelectionStateStore, InMemorySelectionStateStore


def test_missing_file_is_not_found(tmp_path):
    store = FileSelectionStateStore(tmp_path / "selected_model.txt")
    assert store.try_load() == (None, False)


def test_save_then_load_trims(tmp_path):
    path = tmp_path / "state" / "selected_model.txt"
    store = FileSelectionStateStore(path)
    store.save("phi-3-mini")
    assert store.try_load() == ("phi-3-mini", True)

    path.write_text("  phi-3-mini \n", encoding="utf-8")
    assert store.try_load() == ("phi-3-mini", True)
    assert not path.with_name(path.name + ".tmp").exists()


def test_blank_value_is_not_found(tmp_path):
    path = tmp_path / "selected_model.txt"
    path.write_text("   \n", encoding="utf-8")
    assert FileSelectionStateStore(path).try_load() == (None, False)


def test_clear_is_idempotent(tmp_path):
    store = FileSelectionStateStore(tmp_path / "selected_model.txt")
    store.save("m1")
    store.clear()
    store.clear()
    assert store.try_load() == (None, False)


def test_unreadable_location_is_swallowed(tmp_path):
    # A directory where the file should be
    path = tmp_path / "selected_model.txt"
    path.mkdir()
    store = FileSelectionStateStore(path)
    assert store.try_load() == (None, False)
    store.save("m1")
    store.clear()


def test_in_memory_store():
    store = InMemorySelectionStateStore()
    assert store.try_load() == (None, False)
    store.save("m1")
    assert store.try_load() == ("m1", True)
    store.clear()
    assert store.try_load() == (None, False)
