import numpy as np
import pytest

from learned_rmi.indexes.btree import BTree


@pytest.mark.parametrize("order", [3, 4, 64])
def test_find_every_key(order):
    rng = np.random.default_rng(0)
    keys = rng.permutation(200)
    tree = BTree(order=order)
    tree.build((int(k), f"v{k}") for k in keys)

    assert tree.size == 200
    for k in range(200):
        assert tree.find(k) == (k, f"v{k}")
    assert tree.find(-1) is None
    assert tree.find(500) is None
    assert not tree.search(10.5)


def test_duplicates_straddling_leaves_return_first():
    entries = [(1, "a")] + [(5, f"dup{i}") for i in range(10)] + [(9, "z")]
    tree = BTree(order=3)
    tree.build(entries)
    assert tree.find(5) == (5, "dup0")
    assert tree.find(9) == (9, "z")


def test_empty_tree_and_memory():
    tree = BTree(order=8)
    tree.build([])
    assert tree.find(1) is None

    tree.build([(i, i) for i in range(100)])
    assert tree.get_memory_usage() > 100 * 16
    with pytest.raises(ValueError):
        BTree(order=2)
