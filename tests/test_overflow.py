from learned_rmi.indexes.overflow import Entry, OverflowBuffer


def test_append_and_find_earliest():
    buffer = OverflowBuffer(max_size=3)
    buffer.append(2, "a")
    buffer.append(1, "b")
    buffer.append(2, "c")

    assert len(buffer) == 3
    assert buffer.size == 3
    assert buffer.find(2) == Entry(2, "a")
    assert buffer.find(7) is None
    assert list(buffer) == [Entry(2, "a"), Entry(1, "b"), Entry(2, "c")]


def test_capacity_is_strictly_greater():
    buffer = OverflowBuffer(max_size=2)
    buffer.append(1, 1)
    buffer.append(2, 2)
    assert not buffer.is_over_capacity()
    buffer.append(3, 3)
    assert buffer.is_over_capacity()


def test_clear_resets_counter_and_snapshot_is_a_copy():
    buffer = OverflowBuffer(max_size=5)
    buffer.append(1, 1)
    snapshot = buffer.snapshot()
    buffer.clear()

    assert snapshot == [Entry(1, 1)]
    assert len(buffer) == 0
    assert buffer.size == 0
