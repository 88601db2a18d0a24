"""
Тесты хранилища с временем жизни записей
"""
import pytest

from helpme.utils.ttl_store import TTLStore


@pytest.fixture
def store(clock) -> TTLStore:
    return TTLStore(clock=clock)


class TestTTLStore:
    """Тесты TTLStore"""

    def test_value_lives_until_expiry(self, store, clock):
        """Тест: запись доступна до истечения и исчезает после"""
        store.set("code", "123456", ttl=180)

        clock.advance(179)
        assert store.get("code") == "123456"

        clock.advance(1)
        assert store.get("code") is None
        assert store.get("code", "default") == "default"

    def test_replace_keeps_expiry(self, store, clock):
        """Тест: replace меняет значение, но не продлевает срок"""
        expires_at = store.set("counter", 1, ttl=60)
        clock.advance(30)

        assert store.replace("counter", 2)
        assert store.get("counter") == 2
        assert store.expires_at("counter") == expires_at

        clock.advance(30)
        assert not store.replace("counter", 3)

    def test_pop(self, store):
        """Тест: pop возвращает и удаляет значение"""
        store.set("key", "value", ttl=10)
        assert store.pop("key") == "value"
        assert store.pop("key") is None

    def test_purge_expired(self, store, clock):
        """Тест: purge удаляет только истёкшие записи"""
        store.set("short", 1, ttl=10)
        store.set("long", 2, ttl=100)
        clock.advance(50)

        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.get("long") == 2

    def test_purge_skips_overwritten_entries(self, store, clock):
        """Тест: перезаписанный ключ не удаляется по старому сроку"""
        store.set("key", "old", ttl=10)
        store.set("key", "new", ttl=100)
        clock.advance(50)

        assert store.purge_expired() == 0
        assert store.get("key") == "new"

    def test_ttl_must_be_positive(self, store):
        """Тест: нулевой ttl недопустим"""
        with pytest.raises(ValueError):
            store.set("key", "value", ttl=0)
