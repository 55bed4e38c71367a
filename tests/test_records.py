import pytest

from bookrecommender.models import Library, Rating, User
from bookrecommender.records import (
    RecordFormatError,
    decode_library,
    decode_rating,
    decode_user,
    encode_library,
    encode_rating,
    encode_user,
    parse_catalog_line,
    split_catalog_line,
)


def test_split_keeps_commas_inside_quotes():
    fields = split_catalog_line('7,Titolo,"Rossi, Mario","a, b",X,"Y",1.00,May,2001')
    assert fields == ["7", "Titolo", "Rossi, Mario", "a, b", "X", "Y", "1.00", "May", "2001"]


def test_parse_catalog_line_rejects_wrong_field_count():
    assert parse_catalog_line("1,Solo titolo") is None
    assert parse_catalog_line("x,T,A,D,C,P,1,May,2000") is None


def test_parse_catalog_line_field_order():
    book = parse_catalog_line('3,Titolo,"Autore","Descr","Cat","Editore",9.90,March,1999\n')
    assert (book.id, book.title, book.authors, book.year) == (3, "Titolo", "Autore", "1999")
    assert (book.publisher, book.price, book.month) == ("Editore", "9.90", "March")


def test_library_record_round_trip():
    library = Library("u1", "classics", frozenset({3, 1, 2}))
    line = encode_library(library)
    assert line == "u1;classics;[1, 2, 3]"
    assert decode_library(line).book_ids == library.book_ids


def test_library_record_malformed():
    with pytest.raises(RecordFormatError):
        decode_library("u1;classics")
    with pytest.raises(RecordFormatError):
        decode_library("u1;classics;[1, due]")


def test_rating_overall_written_with_six_decimals():
    rating = Rating("u1", "classics", 1, (5, 4, 5, 4, 5), ("a", "b", "c", "d", "e"), 4.6, "bello")
    line = encode_rating(rating)
    assert line == "u1;1;5;a;4;b;5;c;4;d;5;e;4.600000;bello"


def test_rating_decode_accepts_decimal_comma():
    rating = decode_rating("u1;1;5;a;4;b;5;c;4;d;5;e;4,600000;bello")
    assert rating.overall == pytest.approx(4.6)
    assert rating.scores == (5, 4, 5, 4, 5)
    assert rating.notes == ("a", "b", "c", "d", "e")
    assert rating.library_id == ""


def test_rating_decode_wrong_field_count():
    with pytest.raises(RecordFormatError):
        decode_rating("u1;1;5;a")


def test_user_record_layout():
    user = User("u1", "Mario", "Rossi", "RSSMRA80A01H501U", "m@example.com", "secret1")
    line = encode_user(user)
    assert line == "Mario;Rossi;RSSMRA80A01H501U;m@example.com;u1;secret1"
    assert decode_user(line) == user
