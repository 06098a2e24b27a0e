import pytest

from icpminer.core.mining import compute_starting_page


@pytest.mark.parametrize(
    "current_page, processed, page_size, expected",
    [
        (0, 0, 10, 0),
        (4, 0, 10, 4),
        (0, 25, 10, 3),
        (0, 30, 10, 3),
        (5, 25, 10, 5),
        (2, 21, 10, 3),
        (None, None, 10, 0),
    ],
)
def test_start_page_is_furthest_of_stored_and_implied(current_page, processed, page_size, expected):
    assert compute_starting_page(current_page, processed, page_size) == expected


def test_non_positive_page_size_trusts_stored_page():
    assert compute_starting_page(2, 50, 0) == 2
