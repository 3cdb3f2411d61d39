"""
Key Identity and Lock Requirements
==================================

Keys authored inside a template are referenced by a template-local handle.
When the template is instantiated into a dungeon, each handle is flattened
into a global KeyIdentity through the KeyRegistry, and every lock that
referenced the handle is rewritten to a LockRequirement on the same
global key.

Identity merging:
    KeyIdentityPolicy.PER_INSTANCE  - every instantiation gets fresh keys
    KeyIdentityPolicy.PER_TEMPLATE  - all instantiations of one template share keys
    Keys authored with shared=True always merge per template.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Hashable, List, Optional

from cyclegen.core.ids import KeyId

logger = logging.getLogger(__name__)


class KeyType(Enum):
    HARD = auto()
    SOFT = auto()
    ABILITY = auto()
    ITEM = auto()
    TRIGGER = auto()
    NARRATIVE = auto()


class LockType(Enum):
    STANDARD = auto()
    TERRAIN = auto()
    ABILITY = auto()
    PUZZLE = auto()
    ONE_WAY = auto()
    NARRATIVE = auto()
    BOSS = auto()


class KeyIdentityPolicy(Enum):
    PER_INSTANCE = auto()
    PER_TEMPLATE = auto()


@dataclass(frozen=True)
class KeyIdentity:
    """A dungeon-wide key."""
    key_id: KeyId
    global_id: str
    display_name: str
    key_type: KeyType = KeyType.HARD
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class LockRequirement:
    """A lock satisfied by the key identified by `required_key_id`."""
    required_key_id: KeyId
    lock_type: LockType = LockType.STANDARD
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class TemplateKeyRef:
    """
    Handle identifying one template key grant.

    `instance` is the CycleId value of the owning cycle under PER_INSTANCE
    identity, or None when the key is merged across instantiations.
    """
    template_name: str
    local_id: int
    instance: Optional[int] = None


class KeyRegistry:
    """
    Maps template key references to global key identities for one run.

    Registration is idempotent by reference: registering the same reference
    twice returns the same identity, regardless of display name. Distinct
    references always receive distinct identities.
    """

    def __init__(self):
        self._by_ref: Dict[Hashable, KeyIdentity] = {}
        self._by_id: Dict[KeyId, KeyIdentity] = {}
        self._next_key = 1
        self._per_template_count: Dict[str, int] = {}

    def register_key(
        self,
        template_key_ref: Hashable,
        owning_template_name: str,
        key_type: KeyType = KeyType.HARD,
        display_name: Optional[str] = None,
    ) -> KeyIdentity:
        existing = self._by_ref.get(template_key_ref)
        if existing is not None:
            return existing

        key_id = KeyId(self._next_key)
        self._next_key += 1

        n = self._per_template_count.get(owning_template_name, 0) + 1
        self._per_template_count[owning_template_name] = n
        local = getattr(template_key_ref, 'local_id', key_id.value)
        global_id = f"{owning_template_name}_k{local}_{n}"

        identity = KeyIdentity(
            key_id=key_id,
            global_id=global_id,
            display_name=display_name or f"Key {key_id.value}",
            key_type=key_type,
            metadata={'template': owning_template_name},
        )
        self._by_ref[template_key_ref] = identity
        self._by_id[key_id] = identity
        logger.debug(f"Registered key {global_id} as {key_id}")
        return identity

    def get_key(self, key_id: KeyId) -> KeyIdentity:
        return self._by_id[key_id]

    def find_by_ref(self, template_key_ref: Hashable) -> Optional[KeyIdentity]:
        return self._by_ref.get(template_key_ref)

    def all_keys(self) -> List[KeyIdentity]:
        return list(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, key_id: KeyId) -> bool:
        return key_id in self._by_id
