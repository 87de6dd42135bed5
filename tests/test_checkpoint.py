"""Unit tests for checkpoint stores."""

from spotify2tidal.checkpoint import JsonFileCheckpointStore, MemoryCheckpointStore


STATE = {
    'session_id': 'abc',
    'timestamp': '2026-01-01T10:00:00',
    'completed_playlists': ['p1', 'p2'],
    'current_playlist': None,
    'finished': False,
}


class TestMemoryCheckpointStore:
    """Test cases for MemoryCheckpointStore."""

    def test_empty_by_default(self):
        assert MemoryCheckpointStore().load() is None

    def test_save_stores_a_copy(self):
        store = MemoryCheckpointStore()
        state = dict(STATE, completed_playlists=['p1'])

        store.save(state)
        state['completed_playlists'].append('p2')

        assert store.load()['completed_playlists'] == ['p1']
        assert store.saves == 1


class TestJsonFileCheckpointStore:
    """Test cases for JsonFileCheckpointStore."""

    def test_round_trip_creates_directory(self, tmp_path):
        path = tmp_path / ".progress" / "progress.json"
        store = JsonFileCheckpointStore(str(path))

        store.save(STATE)

        assert path.exists()
        assert JsonFileCheckpointStore(str(path)).load() == STATE

    def test_missing_file(self, tmp_path):
        assert JsonFileCheckpointStore(str(tmp_path / "none.json")).load() is None

    def test_corrupt_file_loads_as_absent(self, tmp_path):
        path = tmp_path / "progress.json"
        path.write_text("{not json", encoding='utf-8')

        assert JsonFileCheckpointStore(str(path)).load() is None

    def test_non_object_loads_as_absent(self, tmp_path):
        path = tmp_path / "progress.json"
        path.write_text("[1, 2]", encoding='utf-8')

        assert JsonFileCheckpointStore(str(path)).load() is None

    def test_unwritable_location_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding='utf-8')
        store = JsonFileCheckpointStore(str(blocker / "progress.json"))

        store.save(STATE)

        assert store.load() is None
