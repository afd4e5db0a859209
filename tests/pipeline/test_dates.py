import math
from datetime import datetime

from chat_lobby.pipeline.dates import get_timestamp, parse_date_from_filename, parse_loose_date


def _ms(*parts):
    return int(datetime(*parts).timestamp() * 1000)


def test_filename_patterns():
    assert parse_date_from_filename("Alice - 2024-03-01@09h05m07s.jsonl") == _ms(2024, 3, 1, 9, 5, 7)
    assert parse_date_from_filename("2024-03-01 @ 09h 05m 07s.jsonl") == _ms(2024, 3, 1, 9, 5, 7)
    assert parse_date_from_filename("backup 2024-03-01.jsonl") == _ms(2024, 3, 1)
    assert parse_date_from_filename("no date here.jsonl") == 0
    assert parse_date_from_filename("2024-13-45.jsonl") == 0


def test_numeric_last_mes_wins():
    chat = {"last_mes": 1_700_000_000_000, "file_name": "2020-01-01.jsonl"}
    assert get_timestamp(chat) == 1_700_000_000_000


def test_last_mes_string_with_glued_meridiem():
    chat = {"last_mes": "January 5, 2024 3:45pm"}
    assert get_timestamp(chat) == _ms(2024, 1, 5, 15, 45)


def test_iso_strings():
    assert parse_loose_date("2024-01-05T10:00:00") == _ms(2024, 1, 5, 10)
    assert parse_loose_date("garbage") == 0


def test_falls_back_through_date_fields_to_filename():
    assert get_timestamp({"last_mes": "garbage", "file_date": "2024-01-05 10:00:00"}) == _ms(2024, 1, 5, 10)
    assert get_timestamp({"date": 42}) == 42
    assert get_timestamp({"file_name": "2024-01-01@10h00m00s.jsonl"}) == _ms(2024, 1, 1, 10)
    assert get_timestamp({"fileName": "2024-01-01.jsonl"}) == _ms(2024, 1, 1)
    assert get_timestamp({}) == 0


def test_non_finite_numbers_fall_back_to_filename():
    assert get_timestamp({"last_mes": math.nan, "file_name": "2024-01-01.jsonl"}) == _ms(2024, 1, 1)
    assert get_timestamp({"last_mes": math.inf, "date": -math.inf}) == 0
