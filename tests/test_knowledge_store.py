"""Tests for the knowledge snapshot file store."""

import json

import pytest

from tealounge.utils.knowledge_store import KnowledgeStore, KnowledgeStoreError

SNAPSHOT = {'preferences': {'f1': 'Loves sushi'}, 'plans': {'f2': 'Date with Sam tomorrow'}}


class TestKnowledgeStore:

    def test_missing_file_loads_none(self, tmp_path):
        assert KnowledgeStore(str(tmp_path / 'nope.json')).load() is None

    def test_save_then_load(self, tmp_path):
        path = tmp_path / 'knowledge.json'
        store = KnowledgeStore(str(path))

        store.save(SNAPSHOT, {'totalFacts': 2})

        assert store.load() == SNAPSHOT
        document = json.loads(path.read_text())
        assert set(document) == {'learnedFacts', 'memoryStats', 'lastSaved'}
        assert document['memoryStats'] == {'totalFacts': 2}

    def test_save_creates_directories_and_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / 'nested' / 'dir' / 'knowledge.json'
        KnowledgeStore(str(path)).save(SNAPSHOT, {})

        assert path.exists()
        assert [p.name for p in path.parent.iterdir()] == ['knowledge.json']

    def test_save_overwrites_previous_snapshot(self, tmp_path):
        store = KnowledgeStore(str(tmp_path / 'knowledge.json'))
        store.save(SNAPSHOT, {})
        store.save({'personal': {'f3': 'Works nights'}}, {})
        assert store.load() == {'personal': {'f3': 'Works nights'}}

    def test_document_without_facts_loads_empty(self, tmp_path):
        path = tmp_path / 'knowledge.json'
        path.write_text(json.dumps({'lastSaved': '2025-01-01T00:00:00'}))
        assert KnowledgeStore(str(path)).load() == {}

    @pytest.mark.parametrize('content', ['{not json', '[1, 2]', '{"learnedFacts": [1, 2]}'])
    def test_unreadable_documents_raise(self, tmp_path, content):
        path = tmp_path / 'knowledge.json'
        path.write_text(content)
        with pytest.raises(KnowledgeStoreError):
            KnowledgeStore(str(path)).load()

    def test_unserialisable_snapshot_raises(self, tmp_path):
        path = tmp_path / 'knowledge.json'
        with pytest.raises(KnowledgeStoreError):
            KnowledgeStore(str(path)).save({'personal': {'f1': object()}}, {})
        assert not path.exists()
        assert list(tmp_path.iterdir()) == []
