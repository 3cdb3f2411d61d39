"""
Tests for the key registry (template key flattening).
"""

from cyclegen.core.ids import KeyId
from cyclegen.core.keys import KeyRegistry, KeyType, TemplateKeyRef


class TestKeyRegistry:
    """Registration is idempotent by reference, not by display name."""

    def test_same_reference_returns_same_identity(self):
        registry = KeyRegistry()
        ref = TemplateKeyRef("Vault", 1, 10)
        first = registry.register_key(ref, "Vault", KeyType.HARD, "Gold Key")
        second = registry.register_key(ref, "Vault", KeyType.HARD, "Renamed")
        assert first is second
        assert len(registry) == 1

    def test_distinct_references_never_collide(self):
        registry = KeyRegistry()
        a = registry.register_key(TemplateKeyRef("Vault", 1, 10), "Vault", KeyType.HARD, "Key")
        b = registry.register_key(TemplateKeyRef("Vault", 1, 11), "Vault", KeyType.HARD, "Key")
        assert a.key_id != b.key_id
        assert a.global_id != b.global_id
        assert len(registry) == 2

    def test_global_id_format(self):
        registry = KeyRegistry()
        a = registry.register_key(TemplateKeyRef("Vault", 1, 10), "Vault")
        b = registry.register_key(TemplateKeyRef("Vault", 1, 11), "Vault")
        c = registry.register_key(TemplateKeyRef("Gate", 2, None), "Gate")
        assert a.global_id == "Vault_k1_1"
        assert b.global_id == "Vault_k1_2"
        assert c.global_id == "Gate_k2_1"

    def test_key_ids_sequential_from_one(self):
        registry = KeyRegistry()
        a = registry.register_key(TemplateKeyRef("T", 1), "T")
        b = registry.register_key(TemplateKeyRef("T", 2), "T")
        assert a.key_id == KeyId(1)
        assert b.key_id == KeyId(2)

    def test_lookup(self):
        registry = KeyRegistry()
        ref = TemplateKeyRef("T", 1)
        identity = registry.register_key(ref, "T", KeyType.ABILITY, "Hookshot")
        assert registry.get_key(identity.key_id) is identity
        assert registry.find_by_ref(ref) is identity
        assert registry.find_by_ref(TemplateKeyRef("T", 2)) is None
        assert identity.key_id in registry
        assert identity.key_type == KeyType.ABILITY
        assert registry.all_keys() == [identity]
