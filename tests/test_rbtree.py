import random

import pytest

from dillsock.rbtree import Node, RBTree


def test_empty_tree():
    tree = RBTree()
    assert tree.is_empty()
    assert tree.first() is None
    assert len(tree) == 0
    assert list(tree) == []


def test_insert_returns_node_with_value_and_payload():
    tree = RBTree()
    node = tree.insert(42, "payload")
    assert isinstance(node, Node)
    assert (node.val, node.payload) == (42, "payload")
    assert not tree.is_empty()
    assert tree.first() is node
    assert tree.next(node) is None


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_iteration_is_sorted(seed):
    rng = random.Random(seed)
    values = [rng.randrange(-1000, 1000) for _ in range(500)]
    tree = RBTree()
    for v in values:
        tree.insert(v)
    assert [n.val for n in tree] == sorted(values)
    assert len(tree) == len(values)


def test_first_is_minimum():
    tree = RBTree()
    for v in [5, 3, 9, 1, 7]:
        tree.insert(v)
    assert tree.first().val == min([5, 3, 9, 1, 7])


def test_duplicates_are_all_kept():
    tree = RBTree()
    for i in range(10):
        tree.insert(7, i)
    assert sorted(n.payload for n in tree) == list(range(10))
    assert all(n.val == 7 for n in tree)


@pytest.mark.parametrize("seed", [4, 5, 6])
def test_erase_random_subset(seed):
    rng = random.Random(seed)
    tree = RBTree()
    nodes = [tree.insert(rng.randrange(0, 300), i) for i in range(400)]
    rng.shuffle(nodes)
    removed, kept = nodes[:200], nodes[200:]
    for node in removed:
        tree.erase(node)
    assert len(tree) == len(kept)
    assert [n.val for n in tree] == sorted(n.val for n in kept)
    assert {n.payload for n in tree} == {n.payload for n in kept}


def test_erase_everything_leaves_empty_tree():
    rng = random.Random(7)
    tree = RBTree()
    nodes = [tree.insert(rng.randrange(100)) for _ in range(100)]
    rng.shuffle(nodes)
    for node in nodes:
        tree.erase(node)
    assert tree.is_empty()
    assert tree.first() is None
    assert len(tree) == 0


def test_interleaved_insert_and_erase_keeps_order():
    rng = random.Random(8)
    tree = RBTree()
    live = []
    for _ in range(1000):
        if live and rng.random() < 0.4:
            node = live.pop(rng.randrange(len(live)))
            tree.erase(node)
        else:
            live.append(tree.insert(rng.randrange(50)))
        assert [n.val for n in tree] == sorted(n.val for n in live)


def test_pop_minimum_repeatedly():
    tree = RBTree()
    values = [8, 2, 6, 4, 10, 0]
    for v in values:
        tree.insert(v)
    popped = []
    while not tree.is_empty():
        node = tree.first()
        popped.append(node.val)
        tree.erase(node)
    assert popped == sorted(values)


def test_erase_foreign_node_raises():
    a, b = RBTree(), RBTree()
    node = a.insert(1)
    b.insert(1)
    with pytest.raises(ValueError):
        b.erase(node)
    assert len(b) == 1


def test_erase_twice_raises():
    tree = RBTree()
    node = tree.insert(1)
    tree.erase(node)
    with pytest.raises(ValueError):
        tree.erase(node)