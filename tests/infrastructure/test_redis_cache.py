import pytest

from infrastructure.cache import RedisCache


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


@pytest.mark.asyncio
async def test_set_if_absent_uses_namespace_and_ttl():
    client = FakeRedis()
    cache = RedisCache(client, namespace="marketplace:")

    assert await cache.set_if_absent("webhook:paystack:charge.success:1:abc", "1", ttl=86400) is True
    assert await cache.set_if_absent("webhook:paystack:charge.success:1:abc", "1", ttl=86400) is False
    assert client.expiry == {"marketplace:webhook:paystack:charge.success:1:abc": 86400}

    assert await cache.delete("webhook:paystack:charge.success:1:abc") is True
    assert await cache.delete("webhook:paystack:charge.success:1:abc") is False
