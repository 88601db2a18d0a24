"""
Тесты кодов подтверждения
"""
import pytest

from helpme.services.verification_store import VerificationStore
from helpme.utils.ttl_store import TTLStore


PHONE = "01012345678"


@pytest.fixture
def verification(clock) -> VerificationStore:
    return VerificationStore(TTLStore(clock=clock), ttl=180, max_attempts=3)


class TestVerificationStore:
    """Тесты VerificationStore"""

    def test_issued_code_format(self, verification):
        """Тест: код из шести цифр"""
        code = verification.issue(PHONE)
        assert len(code) == 6
        assert code.isdigit()

    def test_code_is_single_use(self, verification):
        """Тест: верный код погашается после проверки"""
        code = verification.issue(PHONE)

        assert verification.verify(PHONE, code)
        assert not verification.verify(PHONE, code)

    def test_code_expires(self, verification, clock):
        """Тест: код недействителен после TTL"""
        code = verification.issue(PHONE)
        clock.advance(180)
        assert not verification.verify(PHONE, code)

    def test_attempts_exhausted(self, verification):
        """Тест: после исчерпания попыток верный код уже не принимается"""
        code = verification.issue(PHONE)
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(3):
            assert not verification.verify(PHONE, wrong)
        assert not verification.verify(PHONE, code)

    def test_wrong_attempt_keeps_code_alive(self, verification):
        """Тест: неверная попытка до лимита не аннулирует код"""
        code = verification.issue(PHONE)
        wrong = "000000" if code != "000000" else "111111"

        assert not verification.verify(PHONE, wrong)
        assert verification.verify(PHONE, code)

    def test_purposes_are_separate(self, verification):
        """Тест: код телефона не подходит для сброса пароля"""
        code = verification.issue(PHONE, purpose="phone")
        assert not verification.verify(PHONE, code, purpose="password_reset")
        assert verification.verify(PHONE, code, purpose="phone")

    def test_reissue_replaces_previous_code(self, verification):
        """Тест: новый код аннулирует предыдущий"""
        first = verification.issue(PHONE)
        second = verification.issue(PHONE)
        if first != second:
            assert not verification.verify(PHONE, first)
        assert verification.verify(PHONE, second)
