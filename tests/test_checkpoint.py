import asyncio
import glob
import os

from rail_reach.checkpoint import CheckpointStore
from rail_reach.graph import Graph
from rail_reach.models import Position, Progress, Reachable, Station, StationReachables
from rail_reach.utils import load_json_file


def _graph():
    graph = Graph()
    graph.update(StationReachables(
        station=Station(id='A', name='Alpha', position=Position(52.5, 13.4), country='DE'),
        reachables=[
            Reachable(station=Station(id='B', name='Beta'), duration=30.0, direct=True),
            Reachable(station=Station(id='C', name='Gamma', country='PL'), duration=62.5, direct=False),
        ],
    ))
    return graph


def _progress():
    progress = Progress(start_date='2024-05-01')
    progress.mark_done(0, 'A')
    progress.mark_done(3, 'B')
    return progress


def test_persist_then_load_round_trips(tmp_path):
    store = CheckpointStore(output_dir=str(tmp_path))
    graph, progress = _graph(), _progress()

    asyncio.run(store.persist(graph, progress))
    loaded_graph, loaded_progress = asyncio.run(store.load())

    assert loaded_graph == graph
    assert loaded_progress == progress
    assert loaded_progress.is_done(3, 'B')


def test_persist_writes_history_copies(tmp_path):
    store = CheckpointStore(output_dir=str(tmp_path))

    asyncio.run(store.persist(_graph(), _progress()))

    graph_history = glob.glob(os.path.join(str(tmp_path), 'graph.json-*.gz'))
    progress_history = glob.glob(os.path.join(str(tmp_path), 'progress.json-*.gz'))
    assert len(graph_history) == 1
    assert len(progress_history) == 1
    assert Graph.from_dict(load_json_file(graph_history[0])) == _graph()


def test_uncompressed_history(tmp_path):
    store = CheckpointStore(output_dir=str(tmp_path), compress_history=False)

    asyncio.run(store.persist(_graph(), _progress()))

    history = glob.glob(os.path.join(str(tmp_path), 'progress.json-*'))
    assert len(history) == 1
    assert not history[0].endswith('.gz')
    assert Progress.from_dict(load_json_file(history[0])) == _progress()


def test_load_without_files_gives_empty_state(tmp_path):
    graph, progress = asyncio.run(CheckpointStore(output_dir=str(tmp_path / 'missing')).load())

    assert graph == Graph()
    assert progress == Progress()


def test_load_corrupt_files_gives_empty_state(tmp_path):
    (tmp_path / 'graph.json').write_text('{"nodes": {', encoding='utf-8')
    (tmp_path / 'progress.json').write_text('[1, 2, 3]', encoding='utf-8')

    graph, progress = asyncio.run(CheckpointStore(output_dir=str(tmp_path)).load())

    assert graph == Graph()
    assert progress == Progress()


def test_load_graph_with_dangling_edge_gives_empty_graph(tmp_path):
    (tmp_path / 'graph.json').write_text(
        '{"nodes": {}, "adjacency": {"A": {"B": {"duration": 5, "direct": true}}}}',
        encoding='utf-8',
    )

    graph, _ = asyncio.run(CheckpointStore(output_dir=str(tmp_path)).load())

    assert graph == Graph()


def test_persist_writes_history_before_canonical_and_graph_before_progress(tmp_path, monkeypatch):
    store = CheckpointStore(output_dir=str(tmp_path))
    writes = []
    monkeypatch.setattr(
        'rail_reach.checkpoint.write_compressed_text',
        lambda text, path: writes.append(('history', os.path.basename(path).split('-')[0])),
    )
    monkeypatch.setattr(
        'rail_reach.checkpoint.write_text_file',
        lambda text, path: writes.append(('canonical', os.path.basename(path))),
    )

    asyncio.run(store.persist(_graph(), _progress()))

    assert writes == [
        ('history', 'graph.json'),
        ('history', 'progress.json'),
        ('canonical', 'graph.json'),
        ('canonical', 'progress.json'),
    ]


def test_back_to_back_persists_keep_separate_history(tmp_path, monkeypatch):
    monkeypatch.setattr('rail_reach.checkpoint.time.time', lambda: 1714550400.0)
    store = CheckpointStore(output_dir=str(tmp_path))

    asyncio.run(store.persist(_graph(), _progress()))
    asyncio.run(store.persist(_graph(), _progress()))

    assert len(glob.glob(os.path.join(str(tmp_path), 'graph.json-*.gz'))) == 2
    assert len(glob.glob(os.path.join(str(tmp_path), 'progress.json-*.gz'))) == 2
