import pytest

from dcaudit.merge import OrderViolationError
from dcaudit.parsing import parse_line
from dcaudit.tally import format_count, tally_sorted


def test_tally_counts_adjacent_runs():
    lines = ['"a"', '"a"', '"b"', '"c"', '"c"', '"c"']
    assert list(tally_sorted(lines)) == [(2, '"a"'), (1, '"b"'), (3, '"c"')]


def test_tally_of_nothing_is_nothing():
    assert list(tally_sorted([])) == []


def test_tally_rejects_unsorted_input():
    with pytest.raises(OrderViolationError):
        list(tally_sorted(['"b"', '"a"']))


def test_tally_output_parses_as_count_line():
    line = format_count(12, '"/u/stor"')
    assert line == '     12 "/u/stor"\n'
    record = parse_line(line)
    assert (record.count, record.key) == (12, '"/u/stor"')
