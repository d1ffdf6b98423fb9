"""Identity and address-book collaborators consumed by the order engine."""

from dataclasses import dataclass

from sqlalchemy import select

from identity.models import Address, Role, User
from shared.store import Store

_PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.MASTER})


@dataclass(frozen=True)
class Identity:
    """The acting user: just an id and a role."""

    id: str
    role: Role = Role.USER

    @property
    def is_privileged(self) -> bool:
        """ADMIN and MASTER bypass ownership checks."""
        return self.role in _PRIVILEGED_ROLES


class IdentityDirectory:
    def __init__(self, store: Store) -> None:
        self.store = store

    def lookup(self, user_id: str) -> Identity | None:
        with self.store.transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            return Identity(id=user.id, role=Role(user.role))


class AddressBook:
    def __init__(self, store: Store) -> None:
        self.store = store

    def is_owned_by(self, address_id: str, user_id: str) -> bool:
        with self.store.transaction() as session:
            owner = session.scalar(
                select(Address.user_id).where(
                    Address.id == address_id,
                    Address.deleted_at.is_(None),
                )
            )
        return owner is not None and owner == user_id
