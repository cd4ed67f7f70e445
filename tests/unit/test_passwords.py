import pytest

from tutorhub.web.auth.passwords import hash_password, verify_password


@pytest.mark.unit
class TestPasswords:
    def test_round_trip(self) -> None:
        password_hash = hash_password("s3cret-pass")
        assert password_hash.startswith("$argon2")
        assert verify_password("s3cret-pass", password_hash)

    def test_wrong_password(self) -> None:
        assert not verify_password("nope", hash_password("s3cret-pass"))

    def test_missing_hash(self) -> None:
        assert not verify_password("tutorhub-dummy-password", None)
        assert not verify_password("anything", "")

    def test_garbage_hash(self) -> None:
        assert not verify_password("anything", "not-a-hash")
