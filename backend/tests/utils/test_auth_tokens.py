import pytest
from standbook.utils.auth import create_access_token, decode_access_token, parse_bearer


def test_token_round_trip_carries_member_id() -> None:
    token = create_access_token(user_id=17, secret="s3")
    assert decode_access_token(token, secret="s3", algorithms=["HS256"]) == 17


def test_wrong_secret_is_value_error() -> None:
    token = create_access_token(user_id=17, secret="s3")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="other", algorithms=["HS256"])


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Bearer abc", "abc"),
        ("bearer  abc ", "abc"),
        ("Token abc", None),
        ("Bearer", None),
        (None, None),
    ],
)
def test_parse_bearer(header: str | None, expected: str | None) -> None:
    assert parse_bearer(header) == expected
