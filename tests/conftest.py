"""pytest configuration and shared fixtures."""

import pytest

from shapeconv import INT, STRING, Scheme, named, struct_of


@pytest.fixture
def point():
    """Named struct with two int fields."""
    return named("Point", struct_of(X=INT, Y=INT))


@pytest.fixture
def size():
    """Different name, different field names, same layout as ``point``."""
    return named("Size", struct_of(W=INT, H=INT))


@pytest.fixture
def text_scheme():
    """Open Scheme converting into string, with an int formatter loaded."""
    scheme = Scheme(STRING)
    scheme.load(INT, lambda dst, src: dst.set(str(src.data)))
    return scheme
