import pytest

from tests.test_config import ArrayDecoder, two_shot_source


@pytest.fixture
def two_shot_decoder():
    return ArrayDecoder(two_shot_source(), fps=1.0)


@pytest.fixture
def flashing_decoder():
    return ArrayDecoder(two_shot_source(flash_cell=0), fps=1.0)
