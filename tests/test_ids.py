import re

from sprintdesk.services.ids import IdGenerator


def test_ids_are_unique_within_the_same_millisecond():
    ids = IdGenerator(clock=lambda: 1_700_000_000.0)
    generated = [ids.new_id("i") for _ in range(1000)]
    assert len(set(generated)) == 1000


def test_ids_sort_in_creation_order():
    ticks = iter([1.0, 1.0, 1.001, 5.0, 5.0])
    ids = IdGenerator(clock=lambda: next(ticks))
    generated = [ids.new_id("sp") for _ in range(5)]
    assert generated == sorted(generated)


def test_id_shape():
    ids = IdGenerator(clock=lambda: 0.0)
    assert re.fullmatch(r"ws-[0-9a-f]{21}", ids.new_id("ws"))


def test_issue_ids_carry_the_project_key():
    ids = IdGenerator()
    first, second = ids.issue_id("WEB"), ids.issue_id("WEB")
    assert first.startswith("WEB-") and second.startswith("WEB-")
    assert first != second


def test_issue_ids_from_fresh_generators_do_not_collide():
    generated = [IdGenerator().issue_id("WEB") for _ in range(2000)]
    assert len(set(generated)) == 2000
