"""
Shared fixtures for the bookkeeping test suite
"""

import pytest

from bookkeeping.book import Book
from bookkeeping.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def empty_book(storage):
    """Book with no accounts"""
    return Book(storage)


@pytest.fixture
def book(empty_book):
    """Book seeded with the default chart (1000 Cash ... 5200 Office Supplies)"""
    empty_book.accounts.seed_default_chart(actor="setup")
    return empty_book
