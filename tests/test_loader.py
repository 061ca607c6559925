"""
Tests for TreeLoader: on-demand loading, active trail resolution,
loading debounce and identity-preserving reconstruction.
"""

import asyncio
import pytest

from lazytree import TreeLoader, ViewState, LoaderConfig, CollectErrorsPolicy
from lazytree.testing import InMemoryTreeSource


def scenario_source(**kwargs):
    """
    Structure:
        a
        └── a1
        b
    """
    return InMemoryTreeSource.from_nested({'a': {'a1': {}}, 'b': {}}, **kwargs)


def record_trees(loader, source, state):
    """Materialize once and again after every commit; returns the list of trees."""
    trees = [loader.materialize(source, state)]
    loader.subscribe(lambda: trees.append(loader.materialize(source, state)))
    return trees


@pytest.mark.asyncio
async def test_scenario_active_leaf():
    """Activating a1 expands its trail and leaves b collapsed."""
    source = scenario_source()
    state = ViewState(active_id='a1')
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()
    tree = trees[-1]

    a, b = tree.items
    a1 = a.children.items[0]
    assert [node.id for node in tree.items] == ['a', 'b']
    assert a.is_active_trail and a.is_expanded
    assert not a.is_active
    assert a1.is_active and a1.is_active_trail
    assert a1.depth == 1 and a.depth == 0
    assert not b.is_expanded and not b.is_active_trail
    assert tree.is_loading is False


@pytest.mark.asyncio
async def test_initial_tree_is_loading():
    """Before the roots arrive the tree is empty and loading."""
    source = scenario_source()
    source.hold('children', None)
    loader = TreeLoader()

    tree = loader.materialize(source, None)
    assert tree.is_loading is True
    assert tree.items == ()

    source.release('children', None)
    await loader.settle()
    tree = loader.materialize(source, None)
    assert tree.is_loading is False
    assert [node.id for node in tree] == ['a', 'b']


@pytest.mark.asyncio
async def test_default_expand_on_active_trail():
    source = InMemoryTreeSource.from_nested({'A': {'B': {}}})
    state = ViewState(active_id='B')
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()

    assert trees[-1].all_nodes['A'].is_expanded is True
    assert state.expanded_ids == {}


@pytest.mark.asyncio
async def test_explicit_collapse_wins():
    source = InMemoryTreeSource.from_nested({'A': {'B': {}}})
    state = ViewState(active_id='B').with_expanded('A', False)
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()

    node = trees[-1].all_nodes['A']
    assert node.is_active_trail is True
    assert node.is_expanded is False
    # Still loaded because it is on the active trail
    assert [child.id for child in node.children] == ['B']


@pytest.mark.asyncio
async def test_identity_stability():
    """Unchanged subtrees are the same objects across materializations."""
    source = scenario_source()
    state = ViewState(active_id='a1')
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()
    first = trees[-1]

    # Nothing changed at all
    assert loader.materialize(source, state) is first

    # Expanding b only rebuilds b and the tree
    expanded_b = state.with_expanded('b', True)
    second = loader.materialize(source, expanded_b)
    assert second is not first
    assert second.items[0] is first.items[0]
    assert second.items[1] is not first.items[1]
    assert second.items[1].children.is_loading is True

    loader.subscribe(lambda: loader.materialize(source, expanded_b))
    await loader.settle()
    third = loader.materialize(source, expanded_b)
    assert third.items[0] is first.items[0]
    assert third.items[1].children.is_loading is False


@pytest.mark.asyncio
async def test_collapse_keeps_loaded_children_identity():
    source = scenario_source()
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()
    before = trees[-1].all_nodes['a']

    after = loader.materialize(source, state.with_expanded('a', False)).all_nodes['a']
    assert after is not before
    assert after.is_expanded is False
    assert after.children.items[0] is before.children.items[0]


@pytest.mark.asyncio
async def test_batch_atomicity():
    """Children fetched in one batch become visible together."""
    source = InMemoryTreeSource.from_nested({'p': {'p1': {}}, 'q': {'q1': {}}})
    source.hold('children', 'p')
    source.hold('children', 'q')
    state = ViewState(expanded_ids={'p': True, 'q': True})
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await asyncio.sleep(0.01)

    source.release('children', 'p')
    await asyncio.sleep(0.01)
    tree = loader.materialize(source, state)
    assert tree.all_nodes['p'].children.is_loading is True
    assert tree.all_nodes['q'].children.is_loading is True

    source.release('children', 'q')
    await loader.settle()

    for tree in trees:
        p, q = tree.all_nodes.get('p'), tree.all_nodes.get('q')
        if p is None or q is None:
            continue
        assert p.children.is_loading == q.children.is_loading

    final = trees[-1]
    assert [n.id for n in final.all_nodes['p'].children] == ['p1']
    assert [n.id for n in final.all_nodes['q'].children] == ['q1']
    assert loader.get_stats()['children_batches'] == 1


@pytest.mark.asyncio
async def test_provider_swap_resets_tables():
    first_source = scenario_source()
    first_source.hold('children', 'a')
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader(policy=CollectErrorsPolicy())

    loader.materialize(first_source, state)
    await asyncio.sleep(0.01)
    assert [node.id for node in loader.materialize(first_source, state)] == ['a', 'b']

    second_source = InMemoryTreeSource.from_nested({'x': {'x1': {}}})
    swapped = loader.materialize(second_source, ViewState())
    assert swapped.is_loading is True
    assert swapped.items == ()
    assert loader.get_trail('a') is None
    assert loader.get_children('a') is None
    assert 'a' not in swapped.all_nodes

    # The old source answers late; its result is dropped
    first_source.release('children', 'a')
    loader.subscribe(lambda: loader.materialize(second_source, ViewState()))
    await loader.settle()

    tree = loader.materialize(second_source, ViewState())
    assert [node.id for node in tree] == ['x']
    assert loader.get_children('a') is None
    assert 'a1' not in tree.all_nodes
    assert loader.get_stats()['stale_discarded'] >= 1
    assert loader.get_stats()['source_swaps'] == 1


@pytest.mark.asyncio
async def test_debounce_suppresses_fast_loads():
    source = scenario_source()
    source.set_delay('children', 'a', 0.01)
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader(LoaderConfig(loading_transition_ms=100))

    trees = record_trees(loader, source, state)
    await loader.settle()

    for tree in trees:
        node = tree.all_nodes.get('a')
        if node is not None:
            assert node.children.is_loading is False
    assert [n.id for n in trees[-1].all_nodes['a'].children] == ['a1']


@pytest.mark.asyncio
async def test_debounce_shows_slow_loads():
    source = scenario_source()
    source.hold('children', 'a')
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader({'loadingTransitionMs': 50})

    trees = record_trees(loader, source, state)
    await asyncio.sleep(0.01)
    assert trees[-1].all_nodes['a'].children.is_loading is False

    await asyncio.sleep(0.1)
    assert trees[-1].all_nodes['a'].children.is_loading is True

    source.release('children', 'a')
    await loader.settle()
    assert trees[-1].all_nodes['a'].children.is_loading is False


@pytest.mark.asyncio
async def test_immediate_loading_state_by_default():
    source = scenario_source()
    source.hold('children', 'a')
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader()

    record_trees(loader, source, state)
    await asyncio.sleep(0.01)

    tree = loader.materialize(source, state)
    assert tree.all_nodes['a'].children.is_loading is True
    source.release_all()
    await loader.settle()


@pytest.mark.asyncio
async def test_in_flight_ids_are_not_refetched():
    source = scenario_source()
    source.hold('children', 'a')
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader(LoaderConfig.debounced(500))

    for _ in range(5):
        loader.materialize(source, state)
        await asyncio.sleep(0)

    source.release('children', 'a')
    await loader.settle()
    for _ in range(3):
        loader.materialize(source, state)
    await loader.settle()

    assert source.count('children', 'a') == 1


@pytest.mark.asyncio
async def test_trails_propagate_to_loaded_children():
    """Children discovered by expansion can be activated without a trail fetch."""
    source = scenario_source()
    expanded = ViewState(expanded_ids={'a': True})
    loader = TreeLoader()

    record_trees(loader, source, expanded)
    await loader.settle()
    a1_trail = loader.get_trail('a1')
    assert [node.id for node in a1_trail] == ['a1', 'a']

    active = expanded.with_active_id('a1')
    tree = loader.materialize(source, active)
    assert source.count('trail', 'a1') == 0
    assert loader.active_trail_ids('a1') == ('a1', 'a')
    assert tree.all_nodes['a1'].is_active is True
    assert tree.all_nodes['a'].is_active_trail is True


@pytest.mark.asyncio
async def test_trail_fetch_seeds_every_ancestor():
    source = InMemoryTreeSource.from_nested({'r': {'m': {'leaf': {}}}})
    loader = TreeLoader()

    record_trees(loader, source, ViewState(active_id='leaf'))
    await loader.settle()

    assert [node.id for node in loader.get_trail('m')] == ['m', 'r']
    assert [node.id for node in loader.get_trail('r')] == ['r']
    assert source.count('trail', 'leaf') == 1
    assert source.count('trail', 'm') == 0


@pytest.mark.asyncio
async def test_all_nodes_is_live_and_not_pruned():
    source = scenario_source()
    state = ViewState(expanded_ids={'a': True})
    loader = TreeLoader()

    trees = record_trees(loader, source, state)
    await loader.settle()
    collapsed = loader.materialize(source, ViewState(expanded_ids={'a': False}))

    assert 'a1' in collapsed.all_nodes
    # The very first tree sees nodes loaded after it was built
    assert 'a1' in trees[0].all_nodes


def test_materialize_requires_running_loop():
    loader = TreeLoader()
    with pytest.raises(RuntimeError):
        loader.materialize(scenario_source(), None)


@pytest.mark.asyncio
async def test_closed_loader_rejects_materialize():
    source = scenario_source()
    source.hold('children', None)
    async with TreeLoader() as loader:
        loader.materialize(source, None)
        assert loader.in_flight == 1

    assert loader.in_flight == 0
    with pytest.raises(RuntimeError):
        loader.materialize(source, None)


@pytest.mark.asyncio
async def test_stats_are_reported():
    source = scenario_source()
    loader = TreeLoader()

    record_trees(loader, source, ViewState(active_id='a1'))
    await loader.settle()
    stats = loader.get_stats()

    assert stats['root_fetches'] == 1
    assert stats['trail_fetches'] == 1
    assert stats['children_fetches'] >= 2
    assert stats['in_flight'] == 0
    assert stats['known_nodes'] == 3
